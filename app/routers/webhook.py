import json
from typing import Any, Dict, List
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.dependencies import get_alert_service, get_conversation_exporter, get_reply_service, get_twilio_service
from app.logging_config import get_logger
from app.schemas.webhook import ErrorResponse, InboundMessage, WebhookResponse
from app.services.alert_service import AlertService
from app.services.conversation_export import ConversationExporter
from app.services.reply_service import ReplyService
from app.services.twilio_service import TwilioService

logger = get_logger("webhook")

router = APIRouter()


def _field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error.get("loc") else "body"
        errors.setdefault(field, []).append(error["msg"])
    return errors


async def _read_payload(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw or not raw.strip():
        return {}

    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning(
                "webhook.payload.invalid_json",
                extra={"context": {"body_preview": raw[:200].decode("utf-8", "ignore")}},
            )
            return {}
        return payload if isinstance(payload, dict) else {}

    form = parse_qs(raw.decode("utf-8", "ignore"), keep_blank_values=True)
    return {key: values[-1] for key, values in form.items()}


def _error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.get("/")
@router.get("/health")
async def health():
    return {"ok": True}


@router.post(
    "/whatsapp",
    response_model=WebhookResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def handle_whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    reply_service: ReplyService = Depends(get_reply_service),
    twilio: TwilioService = Depends(get_twilio_service),
    exporter: ConversationExporter = Depends(get_conversation_exporter),
    alerts: AlertService = Depends(get_alert_service),
):
    payload = await _read_payload(request)
    try:
        inbound = InboundMessage.model_validate(payload)
    except ValidationError as exc:
        details = _field_errors(exc)
        logger.warning("webhook.payload.invalid", extra={"context": {"details": details}})
        return _error_response(400, ErrorResponse(error="Invalid request body", details=details))

    logger.info(
        "whatsapp.message.received",
        extra={"context": {"from": inbound.sender, "message_sid": inbound.message_sid, "body": inbound.body[:200]}},
    )

    try:
        result = await reply_service.generate_reply(inbound.sender, inbound.body)
    except Exception as exc:
        logger.error(
            "whatsapp.reply.failed",
            extra={"context": {"from": inbound.sender, "error": str(exc), "error_type": type(exc).__name__}},
        )
        background_tasks.add_task(
            alerts.alert_error,
            "Failed to generate reply",
            {"from": inbound.sender, "error_type": type(exc).__name__},
        )
        return _error_response(500, ErrorResponse(error="Failed to generate reply"))

    sent = await twilio.send_whatsapp_message(inbound.sender, result.response)
    if not sent.ok:
        logger.error(
            "whatsapp.send.failed",
            extra={"context": {"from": inbound.sender, "error": sent.error, "error_code": sent.error_code}},
        )
        background_tasks.add_task(
            alerts.alert_warning,
            "Failed to send WhatsApp message",
            {"from": inbound.sender, "error_code": sent.error_code},
        )
        return _error_response(500, ErrorResponse(error="Failed to send message", details=sent.error))

    background_tasks.add_task(
        exporter.save_conversation,
        inbound.sender,
        list(reply_service.get_conversation_history(inbound.sender)),
    )
    return WebhookResponse(success=True, messageSid=sent.value)
