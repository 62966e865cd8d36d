"""
Alert service entry point for JobWatch.

Builds the alert dispatcher from settings (throttle backend, email and
webhook channels), accepts job state-change events over HTTP, and
exposes health and metrics endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from jw_common.config import Settings, get_settings
from jw_common.logging import configure_logging
from jw_common.utils import resolve_timezone

from .channels import EmailChannel, JinjaTemplateRenderer, WebhookChannel
from .dispatcher import AlertDispatcher
from .events import router as events_router
from .health import router as health_router
from .throttle import AlertThrottle, InMemoryAlertThrottle, RedisAlertThrottle

logger = structlog.get_logger()


def build_throttle(settings: Settings) -> AlertThrottle:
    """Create the throttle store selected by ``settings.throttle_backend``."""
    cooldown_ms = settings.alert_cooldown_s * 1000
    if settings.throttle_backend == "redis":
        redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        return RedisAlertThrottle(
            redis,
            cooldown_ms=cooldown_ms,
            lock_timeout_s=settings.lock_timeout_s(),
        )
    return InMemoryAlertThrottle(cooldown_ms=cooldown_ms)


def build_dispatcher(settings: Settings) -> AlertDispatcher:
    """Wire the dispatcher, its throttle and channels from *settings*."""
    channels = [
        EmailChannel(
            settings.sender_config,
            renderer=JinjaTemplateRenderer(settings.email_template_dir or None),
        ),
        WebhookChannel(
            category=settings.alert_category,
            max_attempts=settings.webhook_max_attempts,
            timeout=settings.webhook_timeout_s,
        ),
    ]
    return AlertDispatcher(
        build_throttle(settings),
        channels,
        resource_manager_url=settings.resource_manager_url,
        display_tz=resolve_timezone(settings.display_timezone),
        send_timeout_s=settings.dispatch_budget_s(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle for the alerts service."""
    settings = get_settings()
    configure_logging("alerts", settings.log_level, json_output=settings.log_json)
    if getattr(app.state, "dispatcher", None) is None:
        app.state.dispatcher = build_dispatcher(settings)
    dispatcher: AlertDispatcher = app.state.dispatcher
    logger.info(
        "alerts_service_starting",
        throttle=dispatcher.throttle.backend,
        cooldown_ms=dispatcher.throttle.cooldown_ms,
    )
    yield
    logger.info("alerts_service_stopping")
    await dispatcher.close()


def create_app(dispatcher: AlertDispatcher | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        dispatcher: Pre-built dispatcher; built from settings at startup
                    when omitted.
    """
    app = FastAPI(title="JobWatch Alerts Service", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.include_router(health_router)
    app.include_router(events_router)
    app.mount("/metrics", make_asgi_app())
    return app


app = create_app()

if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run(
        "alerts.main:app",
        host=_settings.api_host,
        port=_settings.api_port,
        reload=False,
    )
