import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.dependencies import get_knowledge_base
from app.logging_config import get_logger, setup_logging
from app.routers import admin, webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Concierge API",
    description="WhatsApp assistant backed by a knowledge base",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(admin.router)


def _is_warm_up_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    value = os.environ.get("KNOWLEDGE_WARM_UP_ENABLED")
    if value is None:
        return True
    return value.strip().lower() not in {"0", "false", "no", "off"}


@app.on_event("startup")
async def warm_up_knowledge_base() -> None:
    if not _is_warm_up_enabled():
        return
    ready = await get_knowledge_base().warm_up()
    logger.info("startup.knowledge_base", extra={"context": {"ready": ready}})
