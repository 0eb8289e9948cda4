from typing import Optional

import httpx

from app.logging_config import get_logger
from app.services.error_codes import user_message_for
from app.services.result import Result

logger = get_logger("twilio_service")

RATE_LIMIT_CODES = {20429, 429}
INVALID_NUMBER_CODES = {21211}
UNAUTHORIZED_CODES = {20003, 401, 403}
UNREACHABLE_CODES = {21608}


def classify_twilio_error(error_code: Optional[int], error_message: str) -> str:
    """Map a Twilio error code/message to rate_limit, invalid_number, unauthorized, unreachable or unknown."""
    lowered = error_message.lower()
    if error_code in RATE_LIMIT_CODES:
        return "rate_limit"
    if (
        error_code in INVALID_NUMBER_CODES
        or "invalid 'to' phone number" in lowered
        or "not a valid phone number" in lowered
    ):
        return "invalid_number"
    if error_code in UNAUTHORIZED_CODES:
        return "unauthorized"
    if error_code in UNREACHABLE_CODES or "unreachable" in lowered or "not reachable" in lowered:
        return "unreachable"
    return "unknown"


class TwilioService:
    """Send WhatsApp messages through the Twilio Messages API."""

    BASE_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        timeout_seconds: float = 15.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.timeout_seconds = timeout_seconds
        self.url = self.BASE_URL.format(account_sid=account_sid)

    def _friendly_error(self, kind: str, to: str, error_message: str, error_code: Optional[int]) -> str:
        if kind == "rate_limit":
            return user_message_for(error_code or 429, "twilio", "Rate limit exceeded. Please try again later.")
        if kind == "invalid_number":
            return f"Invalid phone number: {to}"
        if kind == "unauthorized":
            return user_message_for(error_code or 401, "twilio", "Twilio authentication failed.")
        if kind == "unreachable":
            return f"Phone number {to} is not reachable."
        return error_message

    async def send_whatsapp_message(self, to: str, body: str) -> Result[str]:
        """Send a message. Returns the message SID on success; never raises."""
        data = {"To": to, "Body": body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        elif self.from_number:
            data["From"] = self.from_number

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as exc:
            logger.error(
                "twilio.message.failed",
                extra={"context": {"to": to, "error": str(exc), "error_type": "transport"}},
            )
            return Result.failure(f"Twilio request failed: {exc}", "transport")

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code in (200, 201):
            message_sid = payload.get("sid")
            logger.info(
                "twilio.message.sent",
                extra={
                    "context": {
                        "to": to,
                        "message_sid": message_sid,
                        "messaging_service_sid": self.messaging_service_sid,
                    }
                },
            )
            return Result.success(message_sid)

        error_code = payload.get("code") or payload.get("status") or response.status_code
        error_message = payload.get("message") or response.text or "Unknown error"
        kind = classify_twilio_error(error_code, error_message)

        logger.error(
            "twilio.message.failed",
            extra={
                "context": {
                    "to": to,
                    "messaging_service_sid": self.messaging_service_sid,
                    "error": error_message,
                    "error_code": error_code,
                    "kind": kind,
                    "more_info": payload.get("more_info"),
                }
            },
        )
        return Result.failure(self._friendly_error(kind, to, error_message, error_code), kind)
