"""Operator alerts posted to a Telegram chat."""

from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_ICONS = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"{LEVEL_ICONS.get(level, '📢')} *{level}*\n\n{message}"
    if context:
        lines = "\n".join(f"  {key}: {value}" for key, value in context.items())
        text += f"\n\n```\n{lines}\n```"
    return text


class AlertService:
    """Best-effort alerts: an unconfigured or failing channel is logged, never raised."""

    def __init__(self, bot_token: Optional[str], chat_id: Optional[str], timeout_seconds: float = 10.0):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send_alert(self, level: str, message: str, context: Optional[dict] = None) -> bool:
        if not self.enabled:
            logger.warning("alert.skipped.not_configured", extra={"context": {"level": level, "alert": message}})
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"https://api.telegram.org/bot{self.bot_token}/sendMessage",
                    json={
                        "chat_id": self.chat_id,
                        "text": format_alert(level, message, context),
                        "parse_mode": "Markdown",
                    },
                )
            if response.status_code != 200:
                logger.error(
                    "alert.send.failed",
                    extra={"context": {"level": level, "status_code": response.status_code}},
                )
                return False
            return True
        except httpx.HTTPError as exc:
            logger.error("alert.send.failed", extra={"context": {"level": level, "error": str(exc)}})
            return False

    async def alert_error(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send_alert("ERROR", message, context)

    async def alert_warning(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send_alert("WARNING", message, context)

    async def alert_critical(self, message: str, context: Optional[dict] = None) -> bool:
        return await self.send_alert("CRITICAL", message, context)
