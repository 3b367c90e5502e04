import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse, RedirectResponse

from slotswap.application.exceptions import AuthenticationRequired
from slotswap.wiring.dependencies import get_google_credentials

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/auth")
def start_auth():
    try:
        credentials = get_google_credentials()
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return RedirectResponse(credentials.authorization_url())


@router.get("/oauth2callback")
def oauth2_callback(code: str | None = Query(None)):
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    try:
        credentials = get_google_credentials()
        credentials.exchange_code(code)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except AuthenticationRequired as e:
        logger.error("Authorization code exchange failed", extra={"error": str(e)})
        raise HTTPException(status_code=401, detail=str(e))
    return PlainTextResponse("Authentication successful! You can close this window.")
