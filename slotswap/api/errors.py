from fastapi import HTTPException

from slotswap.application.exceptions import (
    AuthenticationRequired,
    LedgerInvariantViolation,
    NoActiveBooking,
    NoPendingOffer,
    NotificationFailed,
    OfferExpired,
    OfferNotFunded,
    OfferTooLow,
    PaymentAuthorizationFailed,
    PaymentCaptureFailed,
    PaymentReleaseFailed,
    ResponderMismatch,
    SlotNotFound,
    SlotSwapError,
    StoreUnavailable,
    UnrecognizedReply,
)

_STATUS_BY_ERROR: list[tuple[type[SlotSwapError], int]] = [
    (SlotNotFound, 404),
    (NoActiveBooking, 409),
    (NoPendingOffer, 409),
    (OfferTooLow, 400),
    (UnrecognizedReply, 400),
    (LedgerInvariantViolation, 422),
    (OfferExpired, 410),
    (ResponderMismatch, 403),
    (StoreUnavailable, 503),
    (AuthenticationRequired, 401),
    (PaymentAuthorizationFailed, 402),
    (OfferNotFunded, 409),
    (PaymentCaptureFailed, 502),
    (PaymentReleaseFailed, 502),
    (NotificationFailed, 502),
]


def status_for(error: SlotSwapError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def to_http_error(error: SlotSwapError) -> HTTPException:
    return HTTPException(status_code=status_for(error), detail=str(error))
