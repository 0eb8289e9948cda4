"""Best-effort export of conversation transcripts as CSV files in Google Drive."""

import asyncio
import csv
import io
import json
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional

import httpx

from app.logging_config import get_logger
from app.services.conversation_history import ChatMessage

logger = get_logger("conversation_export")

CSV_HEADERS = ["conversation_id", "role", "timestamp", "content"]
CSV_MIME_TYPE = "text/csv"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
DRIVE_API_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
TRANSCRIPT_FILE_NAME = "conversation"


def normalize_phone_number(phone_number: str) -> str:
    return re.sub(r"[^0-9]", "", phone_number)


def _csv_file_name(file_name: str) -> str:
    return file_name if file_name.endswith(".csv") else f"{file_name}.csv"


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_conversation_csv(conversation_id: str, messages: List[ChatMessage], timestamp: Optional[str] = None) -> str:
    """Render non-system turns as CSV rows: conversation_id, role, timestamp, content."""
    timestamp = timestamp or datetime.now(timezone.utc).isoformat()
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for message in messages:
        if message.get("role") == "system":
            continue
        content = message.get("content")
        if not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        writer.writerow([conversation_id, message.get("role"), timestamp, content])
    return buffer.getvalue()


class GoogleDriveClient:
    """Minimal Drive v3 client authenticated as a service account."""

    def __init__(self, client_email: str, private_key: str, timeout_seconds: float = 30.0):
        from google.oauth2 import service_account

        self._credentials = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": client_email,
                "private_key": private_key.replace("\\n", "\n"),
                "token_uri": TOKEN_URI,
            },
            scopes=DRIVE_SCOPES,
        )
        self.timeout_seconds = timeout_seconds

    def _refresh_token(self) -> str:
        from google.auth.transport.requests import Request

        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token

    async def _headers(self) -> dict:
        token = await asyncio.to_thread(self._refresh_token)
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        headers = {**(await self._headers()), **kwargs.pop("headers", {})}
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.request(method, url, headers=headers, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    async def find_file(
        self, folder_id: str, name: str, mime_type: Optional[str] = None
    ) -> Optional[dict]:
        query = f"name='{_escape_query_value(name)}' and '{folder_id}' in parents and trashed=false"
        if mime_type:
            query += f" and mimeType='{mime_type}'"
        data = await self._request(
            "GET",
            DRIVE_API_URL,
            params={
                "q": query,
                "fields": "files(id, name)",
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            },
        )
        files = data.get("files") or []
        return files[0] if files else None

    async def find_or_create_folder(self, parent_folder_id: str, folder_name: str) -> dict:
        existing = await self.find_file(parent_folder_id, folder_name, mime_type=FOLDER_MIME_TYPE)
        if existing:
            return existing
        return await self._request(
            "POST",
            DRIVE_API_URL,
            params={"fields": "id, name, webViewLink", "supportsAllDrives": "true"},
            json={"name": folder_name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_folder_id]},
        )

    async def update_file(self, file_id: str, content: str) -> dict:
        return await self._request(
            "PATCH",
            f"{DRIVE_UPLOAD_URL}/{file_id}",
            params={"uploadType": "media", "supportsAllDrives": "true", "fields": "id, name"},
            content=content.encode("utf-8"),
            headers={"Content-Type": CSV_MIME_TYPE},
        )

    async def create_csv_file(self, folder_id: str, file_name: str, content: str) -> dict:
        created = await self._request(
            "POST",
            DRIVE_API_URL,
            params={"fields": "id, name, webViewLink", "supportsAllDrives": "true"},
            json={"name": _csv_file_name(file_name), "mimeType": CSV_MIME_TYPE, "parents": [folder_id]},
        )
        await self.update_file(created["id"], content)
        return created


class ConversationExporter:
    def __init__(
        self,
        drive_client: Optional[GoogleDriveClient],
        folder_id: Optional[str],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.drive_client = drive_client
        self.folder_id = folder_id
        self._clock = clock

    async def save_conversation(self, phone_number: str, messages: List[ChatMessage]) -> None:
        """Write the transcript to ``conversation-<digits>/conversation.csv``. Never raises."""
        if self.drive_client is None or not self.folder_id:
            logger.warning(
                "conversation.drive.save.skipped.missing.credentials",
                extra={"context": {"phone_number": phone_number}},
            )
            return

        try:
            digits = normalize_phone_number(phone_number)
            folder = await self.drive_client.find_or_create_folder(self.folder_id, f"conversation-{digits}")
            content = build_conversation_csv(digits, messages, timestamp=self._clock().isoformat())
            file_name = _csv_file_name(TRANSCRIPT_FILE_NAME)

            existing = await self.drive_client.find_file(folder["id"], file_name)
            if existing and existing.get("id"):
                await self.drive_client.update_file(existing["id"], content)
                event, file_id = "conversation.drive.updated", existing["id"]
            else:
                created = await self.drive_client.create_csv_file(folder["id"], file_name, content)
                event, file_id = "conversation.drive.created", created.get("id")

            logger.info(
                event,
                extra={"context": {"phone_number": phone_number, "folder_id": folder.get("id"), "file_id": file_id}},
            )
        except Exception as exc:
            logger.error(
                "conversation.drive.save.failed",
                extra={"context": {"phone_number": phone_number, "error": str(exc)}},
                exc_info=True,
            )
