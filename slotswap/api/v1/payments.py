from fastapi import APIRouter, Depends, HTTPException

from slotswap.api.errors import to_http_error
from slotswap.api.v1.schemas import PaymentIntentRequestSchema, PaymentIntentResponseSchema
from slotswap.application.exceptions import SlotSwapError
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.wiring.dependencies import get_payment_orchestrator

router = APIRouter()


@router.post("/payment-intents", response_model=PaymentIntentResponseSchema, status_code=201)
def create_payment_intent(
    req: PaymentIntentRequestSchema,
    payments: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    if req.currency and req.currency.lower() != payments.currency:
        raise HTTPException(status_code=400, detail=f"Only {payments.currency} payments are accepted")
    try:
        hold = payments.authorize(req.amount, {"slotID": req.slot_id, "purpose": req.purpose})
    except SlotSwapError as e:
        raise to_http_error(e)
    return PaymentIntentResponseSchema(client_secret=hold.client_secret, payment_intent_id=hold.intent_id)
