from functools import lru_cache
from datetime import datetime, time, timedelta, timezone
import logging

from slotswap.core.config import settings
from slotswap.application.ports.message_platform import MessagePlatformPort
from slotswap.application.ports.payment_processor import PaymentProcessorPort
from slotswap.application.ports.record_store import RecordStorePort
from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.booking import BookingUseCase
from slotswap.application.use_cases.handle_inbound_reply import HandleInboundReplyUseCase
from slotswap.application.use_cases.notifications import NotificationGateway
from slotswap.application.use_cases.offers import OfferNegotiationUseCase
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.infrastructure.calendar.google_calendar_client import GoogleCalendarRecordStore
from slotswap.infrastructure.calendar.google_credentials import GoogleCredentials
from slotswap.infrastructure.calendar.memory_store import InMemoryRecordStore
from slotswap.infrastructure.payments.mock_processor import MockPaymentProcessor
from slotswap.infrastructure.payments.stripe_processor import StripePaymentProcessor
from slotswap.infrastructure.twilio.mock_platform import MockSmsPlatform
from slotswap.infrastructure.twilio.twilio_client import TwilioClient
from slotswap.infrastructure.twilio.twilio_platform import TwilioPlatform


logger = logging.getLogger(__name__)


def _is_local() -> bool:
    return settings.ENV.lower() in {"dev", "local"}


def seed_demo_slots(store: InMemoryRecordStore, days_ahead: int = 1) -> None:
    day = datetime.now(timezone.utc).date() + timedelta(days=days_ahead)
    for hour in (9, 10, 11):
        start = datetime.combine(day, time(hour=hour), tzinfo=timezone.utc)
        store.add_slot(
            f"demo_slot_{hour:02d}",
            summary=settings.SLOT_SEARCH_QUERY,
            start=start,
            end=start + timedelta(hours=1),
        )


@lru_cache
def get_google_credentials() -> GoogleCredentials:
    return GoogleCredentials(
        client_id=settings.GOOGLE_CLIENT_ID or "",
        client_secret=settings.GOOGLE_CLIENT_SECRET or "",
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        tokens_path=settings.GOOGLE_TOKENS_PATH,
    )


@lru_cache
def get_record_store() -> RecordStorePort:
    if not settings.GOOGLE_CLIENT_ID or _is_local():
        logger.info("Using InMemoryRecordStore (ENV=%s)", settings.ENV)
        store = InMemoryRecordStore()
        seed_demo_slots(store)
        return store
    logger.info("Using GoogleCalendarRecordStore")
    return GoogleCalendarRecordStore(credentials=get_google_credentials())


@lru_cache
def get_slot_ledger() -> SlotLedger:
    # one instance per process: its per-slot locks only serialize writers that share it
    return SlotLedger(
        store=get_record_store(),
        max_attempts=settings.STORE_MAX_ATTEMPTS,
        backoff_seconds=settings.STORE_RETRY_BACKOFF_SECONDS,
    )


@lru_cache
def get_payment_processor() -> PaymentProcessorPort:
    if not settings.STRIPE_SECRET_KEY:
        if _is_local():
            logger.info("Using MockPaymentProcessor (key missing, ENV=dev/local)")
            return MockPaymentProcessor()
        raise ValueError("STRIPE_SECRET_KEY is required to take payments.")
    return StripePaymentProcessor(api_key=settings.STRIPE_SECRET_KEY)


@lru_cache
def get_payment_orchestrator() -> PaymentOrchestrator:
    return PaymentOrchestrator(
        processor=get_payment_processor(),
        currency=settings.CURRENCY,
        provider_account=settings.STRIPE_PROVIDER_ACCOUNT,
    )


@lru_cache
def get_message_platform() -> MessagePlatformPort:
    logger.info(
        "TWILIO_ACCOUNT_SID present=%s TWILIO_PHONE_NUMBER present=%s",
        bool(settings.TWILIO_ACCOUNT_SID),
        bool(settings.TWILIO_PHONE_NUMBER),
    )
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER):
        if _is_local():
            logger.info("Using MockSmsPlatform (credentials missing, ENV=dev/local)")
            return MockSmsPlatform()
        raise ValueError("TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER are required to send SMS.")

    logger.info("Using real TwilioPlatform")
    client = TwilioClient(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
        base_url=settings.TWILIO_BASE_URL,
    )
    return TwilioPlatform(client=client)


@lru_cache
def get_notification_gateway() -> NotificationGateway:
    return NotificationGateway(platform=get_message_platform(), enabled=settings.SMS_ENABLED)


def get_booking_use_case() -> BookingUseCase:
    return BookingUseCase(ledger=get_slot_ledger(), payments=get_payment_orchestrator())


def get_offer_use_case() -> OfferNegotiationUseCase:
    return OfferNegotiationUseCase(
        ledger=get_slot_ledger(),
        payments=get_payment_orchestrator(),
        notifications=get_notification_gateway(),
    )


def get_inbound_reply_use_case() -> HandleInboundReplyUseCase:
    return HandleInboundReplyUseCase(ledger=get_slot_ledger(), offers=get_offer_use_case())
