"""Catalogue of upstream and system error codes with operator and user-facing text."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

Code = Union[int, str]


@dataclass(frozen=True)
class ErrorCodeInfo:
    code: Code
    service: str  # twilio | openai | chromadb | http | system
    category: str
    description: str
    explanation: str
    user_message: Optional[str] = None
    resolution: Optional[str] = None


RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
TWILIO_AUTH_MESSAGE = "Twilio authentication failed. Please check credentials."
KNOWLEDGE_UNAVAILABLE_MESSAGE = "Knowledge base unavailable"

ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    "TWILIO_20429": ErrorCodeInfo(
        code=20429,
        service="twilio",
        category="rate_limit",
        description="Twilio Rate Limit Exceeded",
        explanation="Too many requests were sent to the Twilio API in a short time period.",
        user_message=RATE_LIMIT_MESSAGE,
        resolution="Wait before retrying. Queue outbound messages for high-volume senders.",
    ),
    "TWILIO_429": ErrorCodeInfo(
        code=429,
        service="twilio",
        category="rate_limit",
        description="Twilio Rate Limit (HTTP 429)",
        explanation="HTTP 429 Too Many Requests returned by the Twilio API.",
        user_message=RATE_LIMIT_MESSAGE,
        resolution="Wait before retrying. Check the account limits.",
    ),
    "TWILIO_21211": ErrorCodeInfo(
        code=21211,
        service="twilio",
        category="invalid_input",
        description="Invalid 'To' Phone Number",
        explanation="The destination number is malformed or not in E.164 format.",
        user_message="Invalid phone number",
        resolution="Send to an E.164 number such as whatsapp:+1234567890.",
    ),
    "TWILIO_20003": ErrorCodeInfo(
        code=20003,
        service="twilio",
        category="authentication",
        description="Twilio Authentication Failed",
        explanation="The account SID or auth token is invalid, expired or missing.",
        user_message=TWILIO_AUTH_MESSAGE,
        resolution="Verify TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN.",
    ),
    "TWILIO_21608": ErrorCodeInfo(
        code=21608,
        service="twilio",
        category="delivery",
        description="Phone Number Unreachable",
        explanation="The destination number is disconnected, out of service or blocked.",
        user_message="Phone number is not reachable",
        resolution="Verify the destination can receive WhatsApp messages.",
    ),
    "TWILIO_401": ErrorCodeInfo(
        code=401,
        service="twilio",
        category="authentication",
        description="Unauthorized (HTTP 401)",
        explanation="The Twilio API rejected the credentials.",
        user_message=TWILIO_AUTH_MESSAGE,
        resolution="Verify TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN.",
    ),
    "TWILIO_403": ErrorCodeInfo(
        code=403,
        service="twilio",
        category="authorization",
        description="Forbidden (HTTP 403)",
        explanation="The credentials are valid but the account lacks permission for WhatsApp messaging.",
        user_message=TWILIO_AUTH_MESSAGE,
        resolution="Check the account permissions for the WhatsApp sender.",
    ),
    "OPENAI_429": ErrorCodeInfo(
        code=429,
        service="openai",
        category="rate_limit",
        description="OpenAI Rate Limit Exceeded",
        explanation="Too many requests were sent within the OpenAI rate limit window.",
        user_message="OpenAI API rate limit exceeded. Please try again later.",
        resolution="Retry with backoff or raise the account tier.",
    ),
    "OPENAI_400": ErrorCodeInfo(
        code=400,
        service="openai",
        category="invalid_request",
        description="OpenAI Invalid Request",
        explanation="Request parameters are invalid or exceed limits such as the context window.",
        user_message="Invalid request to OpenAI API",
        resolution="Check parameters and token counts.",
    ),
    "CHROMADB_ECONNREFUSED": ErrorCodeInfo(
        code="ECONNREFUSED",
        service="chromadb",
        category="connection",
        description="ChromaDB Connection Refused",
        explanation="The ChromaDB server refused the connection.",
        user_message=KNOWLEDGE_UNAVAILABLE_MESSAGE,
        resolution="Verify the ChromaDB server is running and reachable.",
    ),
    "CHROMADB_ENOTFOUND": ErrorCodeInfo(
        code="ENOTFOUND",
        service="chromadb",
        category="connection",
        description="ChromaDB Host Not Found",
        explanation="The ChromaDB hostname could not be resolved.",
        user_message=KNOWLEDGE_UNAVAILABLE_MESSAGE,
        resolution="Verify CHROMA_HOST and DNS configuration.",
    ),
    "CHROMADB_TIMEOUT": ErrorCodeInfo(
        code="timeout",
        service="chromadb",
        category="connection",
        description="ChromaDB Request Timeout",
        explanation="The ChromaDB server took too long to respond.",
        user_message=KNOWLEDGE_UNAVAILABLE_MESSAGE,
        resolution="Check server load and network latency.",
    ),
    "HTTP_400": ErrorCodeInfo(
        code=400,
        service="http",
        category="client_error",
        description="Bad Request",
        explanation="The client sent a malformed request.",
        user_message="Invalid request",
        resolution="Send all required fields.",
    ),
    "HTTP_401": ErrorCodeInfo(
        code=401,
        service="http",
        category="authentication",
        description="Unauthorized",
        explanation="The request lacks valid credentials.",
        user_message="Authentication required",
    ),
    "HTTP_403": ErrorCodeInfo(
        code=403,
        service="http",
        category="authorization",
        description="Forbidden",
        explanation="The server refuses to authorize the request.",
        user_message="Access forbidden",
    ),
    "HTTP_429": ErrorCodeInfo(
        code=429,
        service="http",
        category="rate_limit",
        description="Too Many Requests",
        explanation="The client exceeded the rate limit for this endpoint.",
        user_message=RATE_LIMIT_MESSAGE,
    ),
    "HTTP_500": ErrorCodeInfo(
        code=500,
        service="http",
        category="server_error",
        description="Internal Server Error",
        explanation="The server hit an unexpected error while processing the request.",
        user_message="Server error occurred",
        resolution="Retry. If it persists, check the server logs.",
    ),
    "SYSTEM_EMBEDDING_INVALID": ErrorCodeInfo(
        code="EMBEDDING_INVALID",
        service="system",
        category="validation",
        description="Invalid Embedding Vector",
        explanation="The embedding API returned something other than a list of finite numbers.",
        user_message="Knowledge base processing error",
        resolution="Check the embedding model configuration.",
    ),
    "SYSTEM_RESPONSE_EMPTY": ErrorCodeInfo(
        code="RESPONSE_EMPTY",
        service="system",
        category="validation",
        description="Empty API Response",
        explanation="The API answered but the content was empty or missing.",
        user_message="Service temporarily unavailable",
        resolution="Retry. If it persists, check the API status.",
    ),
}


def get_error_code_info(code: Code, service: Optional[str] = None) -> Optional[ErrorCodeInfo]:
    """Find the first catalogue entry with this code, optionally restricted to a service."""
    for info in ERROR_CODES.values():
        if info.code == code and (service is None or info.service == service):
            return info
    return None


def get_error_codes_by_service(service: str) -> List[ErrorCodeInfo]:
    return [info for info in ERROR_CODES.values() if info.service == service]


def get_error_codes_by_category(category: str) -> List[ErrorCodeInfo]:
    return [info for info in ERROR_CODES.values() if info.category == category]


def user_message_for(code: Code, service: Optional[str] = None, default: str = "") -> str:
    info = get_error_code_info(code, service)
    if info and info.user_message:
        return info.user_message
    return default
