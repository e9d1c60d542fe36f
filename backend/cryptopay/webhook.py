"""
Transport adapter between an HTTP server and the Dispatcher.

``WebhookHandler.handle`` takes the raw body and the signature header and
returns the status code and body to answer the provider with. It does not
depend on any web framework; ``create_router`` mounts it on FastAPI.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse

from cryptopay.services.dispatcher import DeliveryState, Dispatcher
from cryptopay.services.signature import HEADER_SIGNATURE_NAME

logger = logging.getLogger(__name__)

WRONG_SIGNATURE_BODY = "wrong request signature"


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: str = ""


def signature_from_headers(headers: Mapping[str, str]) -> str | None:
    """Case-insensitive lookup of the signature header in any mapping."""
    value = headers.get(HEADER_SIGNATURE_NAME)
    if value is not None:
        return value
    for name, value in headers.items():
        if name.lower() == HEADER_SIGNATURE_NAME:
            return value
    return None


class WebhookHandler:
    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def handle(self, raw_body: bytes, request_signature: str | None) -> WebhookResponse:
        # Handlers keep running after this returns.
        delivery = self.dispatcher.process(raw_body, request_signature)

        if delivery.state is DeliveryState.REJECTED_SIGNATURE:
            return WebhookResponse(status.HTTP_400_BAD_REQUEST, WRONG_SIGNATURE_BODY)
        if delivery.state is DeliveryState.REJECTED_BODY:
            return WebhookResponse(status.HTTP_400_BAD_REQUEST, str(delivery.error))
        return WebhookResponse(status.HTTP_200_OK)


def create_router(handler: WebhookHandler, path: str = "/") -> APIRouter:
    router = APIRouter()

    @router.post(path, response_class=PlainTextResponse, include_in_schema=False)
    async def receive_update(request: Request) -> PlainTextResponse:
        raw = await request.body()
        result = handler.handle(raw, signature_from_headers(request.headers))
        return PlainTextResponse(result.body, status_code=result.status_code)

    return router
