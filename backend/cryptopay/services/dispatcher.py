import asyncio
import enum
import inspect
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from cryptopay.core.config import Settings
from cryptopay.schemas.update import Update, UpdateDecodeError, UpdateType, decode_update
from cryptopay.services import signature
from cryptopay.services.registry import Handler, HandlerRegistry
from cryptopay.services.signature import WrongSignatureError
from cryptopay.services.token import validate_token

logger = logging.getLogger(__name__)

WebhookErrorHandler = Callable[[Exception], None]
HandlerErrorHandler = Callable[[Update, Exception], None]


class HandlerTimeoutError(TimeoutError):
    pass


class DeliveryState(str, enum.Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    DECODED = "decoded"
    DISPATCHED = "dispatched"
    REJECTED_SIGNATURE = "rejected_signature"
    REJECTED_BODY = "rejected_body"


@dataclass
class Delivery:
    """Outcome of one inbound webhook request."""

    state: DeliveryState = DeliveryState.RECEIVED
    update: Optional[Update] = None
    error: Optional[Exception] = None
    futures: list[Future] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return self.state in (
            DeliveryState.REJECTED_SIGNATURE,
            DeliveryState.REJECTED_BODY,
        )


class Dispatcher:
    """
    Verify, decode and fan out webhook deliveries to registered handlers.

    Handlers run on a bounded thread pool and are never awaited by the
    caller of ``process``. Transport failures (bad signature, bad body) go to
    ``on_webhook_error``; exceptions raised by handlers go to
    ``on_handler_error`` together with the update that triggered them.
    """

    def __init__(
        self,
        signing_key: bytes,
        registry: HandlerRegistry | None = None,
        on_webhook_error: WebhookErrorHandler | None = None,
        on_handler_error: HandlerErrorHandler | None = None,
        max_workers: int | None = None,
        handler_timeout: float | None = None,
    ):
        self._signing_key = signing_key
        self.registry = registry if registry is not None else HandlerRegistry()
        self.on_webhook_error = on_webhook_error
        self.on_handler_error = on_handler_error
        self.handler_timeout = handler_timeout
        self.max_workers = max_workers
        self._executor_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_token(cls, token: str, **kwargs) -> "Dispatcher":
        validate_token(token)
        return cls(signature.derive_signing_key(token), **kwargs)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "Dispatcher":
        kwargs.setdefault("max_workers", settings.handler_workers)
        kwargs.setdefault("handler_timeout", settings.handler_timeout)
        return cls.from_token(settings.cryptopay_token, **kwargs)

    # ---------- registry ----------
    def bind(self, update_type: UpdateType | str, handler: Handler) -> int:
        return self.registry.bind(update_type, handler)

    def once(self, update_type: UpdateType | str, handler: Handler) -> int:
        return self.registry.once(update_type, handler)

    def unbind(self, update_type: UpdateType | str, handler: Handler) -> bool:
        return self.registry.unbind(update_type, handler)

    def unbind_at(self, update_type: UpdateType | str, index: int) -> None:
        self.registry.unbind_at(update_type, index)

    def unbind_all_for(self, update_type: UpdateType | str) -> None:
        self.registry.unbind_all_for(update_type)

    def unbind_all(self) -> None:
        self.registry.unbind_all()

    # ---------- delivery ----------
    def process(self, raw_body: bytes, request_signature: str | None) -> Delivery:
        delivery = Delivery()

        if not signature.verify(self._signing_key, raw_body, request_signature):
            logger.warning("Rejected webhook delivery: wrong request signature")
            delivery.state = DeliveryState.REJECTED_SIGNATURE
            delivery.error = WrongSignatureError()
            self._report_webhook_error(delivery.error)
            return delivery
        delivery.state = DeliveryState.VERIFIED

        try:
            update = decode_update(raw_body)
        except UpdateDecodeError as e:
            logger.warning(f"Rejected webhook delivery: {e}")
            delivery.state = DeliveryState.REJECTED_BODY
            delivery.error = e
            self._report_webhook_error(e)
            return delivery
        delivery.state = DeliveryState.DECODED
        delivery.update = update

        delivery.futures = self.dispatch(update)
        delivery.state = DeliveryState.DISPATCHED
        return delivery

    def dispatch(self, update: Update) -> list[Future]:
        handlers = self.registry.snapshot(update.update_type)
        if not handlers:
            logger.debug(f"No handlers for update {update.id} ({update.update_type})")
            return []

        logger.info(
            f"Dispatching update {update.id} ({update.update_type}) "
            f"to {len(handlers)} handler(s)"
        )
        futures = []
        for handler in handlers:
            try:
                futures.append(self._get_executor().submit(self._invoke, handler, update))
            except RuntimeError as e:
                # Pool shut down concurrently with this delivery
                logger.error(f"Could not schedule handler for update {update.id}: {e}")
                self._report_handler_error(update, e)
        return futures

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="cryptopay-handler"
                )
            return self._executor

    def _invoke(self, handler: Handler, update: Update) -> Any:
        try:
            result = handler(update)
            if inspect.isawaitable(result):
                result = asyncio.run(self._await(result))
            return result
        except Exception as e:
            logger.exception(f"Handler {handler!r} failed for update {update.id}")
            self._report_handler_error(update, e)
            return None

    async def _await(self, awaitable):
        if self.handler_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self.handler_timeout)
        except asyncio.TimeoutError:
            raise HandlerTimeoutError(
                f"handler did not finish within {self.handler_timeout}s"
            ) from None

    def _report_webhook_error(self, error: Exception) -> None:
        if self.on_webhook_error is None:
            return
        try:
            self.on_webhook_error(error)
        except Exception:
            logger.exception("Webhook error callback failed")

    def _report_handler_error(self, update: Update, error: Exception) -> None:
        if self.on_handler_error is None:
            return
        try:
            self.on_handler_error(update, error)
        except Exception:
            logger.exception("Handler error callback failed")

    # ---------- lifecycle ----------
    def close(self, wait: bool = True) -> None:
        """Shut the handler pool down; a later delivery starts a new one."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
