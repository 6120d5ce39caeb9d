"""
Call Relay - FastAPI Application

Accepts leads over HTTP, has the call provider phone them, waits for the
call to finish and forwards a normalized summary to a CRM webhook.

Python 3.9 compatible.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Optional, Set, Type

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from jwt import InvalidTokenError
from twilio.base.exceptions import TwilioRestException

from call_scripts import render_call_script
from lifecycle import (
    BlandClient,
    CallDispatcher,
    CallLifecycleError,
    CallOrchestrator,
    CallRecord,
    CallStatusPoller,
    CancellationToken,
    DispatchExhausted,
    ForwardDeliveryFailed,
    InvalidPhoneNumber,
    Lead,
    MalformedResponse,
    MissingRequiredField,
    OutcomeClassifier,
    PollExhausted,
    PollTransportError,
    ResultForwarder,
    RunCancelled,
)

from .auth import TokenIssuer, extract_bearer_token
from .conditions import ConditionService, normalize_condition_types
from .config import Settings, mask_secret
from .models import (
    CallDetailsResponse,
    CallLogsRequest,
    ConditionRequest,
    ConditionResponse,
    ForwardResultModel,
    SmsReplyRequest,
    SmsReplyResponse,
    TokenResponse,
    WebhookRequest,
    WebhookResponse,
)
from .sms_reply_service import SmsReplyService
from .sms_service import TwilioSmsService

VERSION = "1.0.0"

# Load environment variables from .env
# Try multiple paths to ensure we find .env
env_paths = [
    Path(__file__).parent.parent / ".env",  # project root
    Path.cwd() / ".env",  # current working directory
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()  # fallback to default behavior

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if os.getenv("DEBUG", "false").lower() == "true" else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Service instances, built in lifespan (Python 3.9 compatible type hints)
settings: Optional[Settings] = None
bland_client: Optional[BlandClient] = None
orchestrator: Optional[CallOrchestrator] = None
forwarder: Optional[ResultForwarder] = None
token_issuer: Optional[TokenIssuer] = None
condition_service: Optional[ConditionService] = None
sms_reply_service: Optional[SmsReplyService] = None

# Tokens of runs in flight, cancelled on shutdown
_active_runs: Set[CancellationToken] = set()

# Lifecycle error -> HTTP status. Order matters: first isinstance match wins.
ERROR_STATUS_CODES: Dict[Type[CallLifecycleError], int] = {
    MissingRequiredField: 400,
    InvalidPhoneNumber: 400,
    DispatchExhausted: 502,
    MalformedResponse: 502,
    PollTransportError: 502,
    ForwardDeliveryFailed: 502,
    PollExhausted: 504,
    RunCancelled: 503,
}


def http_status_for(error: CallLifecycleError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def build_orchestrator(config: Settings, client: BlandClient, result_forwarder: ResultForwarder) -> CallOrchestrator:
    """Wire the lifecycle components from configuration."""
    dispatcher = CallDispatcher(
        client,
        default_region=config.default_phone_region,
        phone_pattern=config.phone_pattern,
        summarize=config.call_summarize,
        record=config.call_record,
    )
    return CallOrchestrator(
        dispatcher=dispatcher,
        poller=CallStatusPoller(client),
        classifier=OutcomeClassifier(
            min_answered_seconds=config.min_answered_seconds,
            duration_filter_enabled=config.duration_filter_enabled,
        ),
        forwarder=result_forwarder,
        dispatch_attempts=config.dispatch_max_attempts,
        poll_interval=config.poll_interval_seconds,
        poll_attempts=config.poll_max_attempts,
        required_fields=config.required_lead_fields,
        default_destination_url=config.destination_webhook_url,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - initialize services."""
    global settings, bland_client, orchestrator, forwarder, token_issuer, condition_service, sms_reply_service

    logger.info("=" * 60)
    logger.info("Initializing Call Relay")
    logger.info("=" * 60)

    settings = Settings.from_env()

    logger.info(f"BLAND_API_KEY present: {bool(settings.bland_api_key)} ({mask_secret(settings.bland_api_key)})")
    logger.info(f"JWT_SECRET present: {bool(settings.jwt_secret)} ({mask_secret(settings.jwt_secret)})")
    logger.info(f"DESTINATION_WEBHOOK_URL: {settings.destination_webhook_url or '(not set)'}")
    logger.info(
        f"Poll policy: interval={settings.poll_interval_seconds}s, "
        f"max_attempts={settings.poll_max_attempts}, dispatch_attempts={settings.dispatch_max_attempts}"
    )

    forwarder = ResultForwarder(timeout=settings.http_timeout_seconds)

    dispatcher: Optional[CallDispatcher] = None
    if settings.bland_api_key:
        bland_client = BlandClient(
            settings.bland_api_key,
            base_url=settings.bland_api_url,
            timeout=settings.http_timeout_seconds,
        )
        orchestrator = build_orchestrator(settings, bland_client, forwarder)
        dispatcher = orchestrator.dispatcher
        logger.info("Call orchestrator initialized successfully")
    else:
        logger.warning("Call orchestrator NOT initialized - BLAND_API_KEY missing")

    if settings.jwt_secret:
        token_issuer = TokenIssuer(settings.jwt_secret, expires_minutes=settings.jwt_expires_minutes)
        logger.info("Bearer token auth enabled")
    else:
        logger.warning("JWT_SECRET missing - bearer token auth DISABLED")

    sms_service = TwilioSmsService(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_phone_number,
    )
    config = settings
    condition_service = ConditionService(
        sms_service,
        dispatcher,
        script_for=lambda name: render_call_script(config.call_script, name, company=config.company_name),
        dispatch_attempts=settings.dispatch_max_attempts,
        default_region=settings.default_phone_region,
        phone_pattern=settings.phone_pattern,
    )

    sms_reply_service = SmsReplyService(
        settings.openai_api_key,
        model=settings.openai_model,
        company=settings.company_name,
    )

    logger.info("=" * 60)

    yield

    # Shutdown
    for token in list(_active_runs):
        token.cancel()
    if bland_client:
        await bland_client.close()
    if forwarder:
        await forwarder.close()
    logger.info("Shutting down Call Relay")


app = FastAPI(
    title="Call Relay",
    description="Dispatches AI calls to leads and forwards call outcomes to a CRM webhook",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Dependencies (overridable in tests)
# ============================================================

def get_settings() -> Settings:
    return settings or Settings.from_env()


def get_orchestrator() -> Optional[CallOrchestrator]:
    return orchestrator


def get_bland_client() -> Optional[BlandClient]:
    return bland_client


def get_token_issuer() -> Optional[TokenIssuer]:
    return token_issuer


def get_condition_service() -> Optional[ConditionService]:
    return condition_service


def get_sms_reply_service() -> Optional[SmsReplyService]:
    return sms_reply_service


async def require_bearer_token(
    authorization: Optional[str] = Header(None),
    issuer: Optional[TokenIssuer] = Depends(get_token_issuer),
) -> Optional[dict]:
    """Validate `Authorization: Bearer <jwt>`; auth is off when no secret is configured."""
    if issuer is None:
        return None

    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=403, detail="Token is required for authentication")

    try:
        return issuer.verify(token)
    except InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise HTTPException(status_code=403, detail="Invalid token")


# ============================================================
# Endpoints
# ============================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/status", response_class=PlainTextResponse)
async def status():
    return "API is running. Use POST /webhook for webhooks."


@app.get("/token", response_model=TokenResponse)
async def issue_token(issuer: Optional[TokenIssuer] = Depends(get_token_issuer)) -> TokenResponse:
    """Issue a short-lived bearer token for /webhook and /logs."""
    if issuer is None:
        raise HTTPException(
            status_code=503,
            detail="auth_not_configured: JWT_SECRET is missing"
        )
    return TokenResponse(token=issuer.issue(), expiresIn=issuer.expires_in_seconds)


@app.post("/webhook", response_model=WebhookResponse)
async def webhook(
    request: WebhookRequest,
    _claims: Optional[dict] = Depends(require_bearer_token),
    call_orchestrator: Optional[CallOrchestrator] = Depends(get_orchestrator),
    config: Settings = Depends(get_settings),
) -> WebhookResponse:
    """
    Run a lead through the full call lifecycle.

    This endpoint:
    1. Validates the lead (phoneNumber, name, email)
    2. Dispatches the AI call
    3. Polls the provider until the call completes
    4. Forwards the classified outcome to the destination webhook

    The request stays open until the call completes or the poll budget runs out.

    Errors:
        400: Missing data, missing lead fields, invalid phone, unknown script
        502: Dispatch, polling or forwarding failed
        503: Call provider not configured
        504: Call did not complete within the poll budget
    """
    if request.data is None:
        logger.warning("Webhook request missing 'data'")
        raise HTTPException(status_code=400, detail="Data is required")

    if call_orchestrator is None:
        logger.error("Call orchestrator not configured")
        raise HTTPException(
            status_code=503,
            detail="call_provider_not_configured: BLAND_API_KEY is missing"
        )

    lead = Lead.from_payload(request.data.as_dict())
    logger.info(f"Inbound webhook received: name={lead.name}, phone={lead.phone}")

    if request.task:
        script = request.task
    else:
        try:
            script = render_call_script(
                request.script or config.call_script,
                lead.name,
                company=config.company_name,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"unknown_script: {e}")

    cancel = CancellationToken()
    _active_runs.add(cancel)
    try:
        result = await call_orchestrator.run(
            lead,
            destination_url=request.webhookUrl,
            script=script,
            cancel=cancel,
        )
    except CallLifecycleError as e:
        logger.error(f"Error processing webhook: {e}")
        raise HTTPException(
            status_code=http_status_for(e),
            detail={"message": "Failed to process webhook", **e.to_dict()},
        )
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"webhook_failed: {type(e).__name__}"
        )
    finally:
        _active_runs.discard(cancel)

    logger.info(f"Webhook data processed: delivered={result.delivered}")
    return WebhookResponse(message=ForwardResultModel(**result.to_dict()))


@app.post("/logs", response_model=CallDetailsResponse)
async def call_logs(
    request: CallLogsRequest,
    _claims: Optional[dict] = Depends(require_bearer_token),
    client: Optional[BlandClient] = Depends(get_bland_client),
) -> CallDetailsResponse:
    """
    Fetch the provider's call log once, without waiting for completion.

    Errors:
        400: Missing callId
        502: Provider lookup failed
        503: Call provider not configured
    """
    if not request.callId:
        raise HTTPException(status_code=400, detail="Call ID is required")

    if client is None:
        raise HTTPException(
            status_code=503,
            detail="call_provider_not_configured: BLAND_API_KEY is missing"
        )

    logger.info(f"Received callId: {request.callId}")
    try:
        data = await client.fetch_call_log(request.callId)
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error fetching call details: {e}")
        raise HTTPException(status_code=502, detail=f"call_details_failed: {e}")

    record = CallRecord.from_provider(data, fallback_call_id=request.callId)
    return CallDetailsResponse(**record.to_details())


@app.post("/check-conditions", response_model=ConditionResponse)
async def check_conditions(
    request: ConditionRequest,
    _claims: Optional[dict] = Depends(require_bearer_token),
    service: Optional[ConditionService] = Depends(get_condition_service),
) -> ConditionResponse:
    """
    Process one or more condition types for a lead.

    Errors:
        400: Missing phone or invalid lead data
        502: SMS or call dispatch failed
        503: SMS or call provider not configured
    """
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")

    condition_types = normalize_condition_types(request.conditionType)
    try:
        results = await service.process(condition_types, request.userData)
    except CallLifecycleError as e:
        logger.error(f"Error processing condition: {e}")
        raise HTTPException(status_code=http_status_for(e), detail=e.to_dict())
    except TwilioRestException as e:
        logger.error(f"Error sending SMS: {e}")
        raise HTTPException(status_code=502, detail=f"sms_failed: {e.msg}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        logger.error(f"Condition processing unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Condition processing error: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"check_conditions_failed: {type(e).__name__}"
        )

    return ConditionResponse(message="Condition(s) processed successfully", results=results)


@app.post("/sms/reply", response_model=SmsReplyResponse)
async def sms_reply(
    request: SmsReplyRequest,
    _claims: Optional[dict] = Depends(require_bearer_token),
    service: Optional[SmsReplyService] = Depends(get_sms_reply_service),
) -> SmsReplyResponse:
    """Draft an SMS reply to a lead's inbound text."""
    if service is None or not service.is_configured:
        raise HTTPException(
            status_code=503,
            detail="openai_not_configured: OPENAI_API_KEY is missing"
        )

    try:
        reply = await service.generate_reply(request.message, name=request.name, context=request.context)
    except ValueError as e:
        logger.error(f"SMS reply generation failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return SmsReplyResponse(reply=reply, aiModel=service.model)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "3091"))
    uvicorn.run(app, host="0.0.0.0", port=port)
