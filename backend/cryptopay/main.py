import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cryptopay.core.config import Settings, get_settings
from cryptopay.middleware.body_size import BodySizeLimitMiddleware
from cryptopay.services.dispatcher import Dispatcher
from cryptopay.webhook import WebhookHandler, create_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None, dispatcher: Dispatcher | None = None
) -> FastAPI:
    """
    Build the webhook receiver application.

    Bind handlers on ``app.state.dispatcher`` (or pass a prepared
    dispatcher). Run with ``uvicorn --factory cryptopay.main:create_app``.
    """
    settings = settings or get_settings()
    logging.getLogger("cryptopay").setLevel(settings.log_level.upper())

    owns_dispatcher = dispatcher is None
    if dispatcher is None:
        dispatcher = Dispatcher.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Running handlers are not awaited; a caller-supplied dispatcher stays open
        if owns_dispatcher:
            dispatcher.close(wait=False)

    app = FastAPI(
        title="Crypto Pay Webhook Receiver",
        description="Receives and dispatches Crypto Pay webhook updates",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher
    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)
    app.include_router(create_router(WebhookHandler(dispatcher), settings.webhook_path))

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    logger.info(f"Webhook endpoint mounted at {settings.webhook_path}")
    return app
