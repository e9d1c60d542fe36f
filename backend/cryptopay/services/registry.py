"""
Handler registry for webhook updates.

Handlers are kept per update type in insertion order. Every mutation goes
through one lock, and dispatch only ever sees a copy taken under that lock,
so handlers added or removed mid-dispatch never affect a delivery already
in flight.

Indices returned by ``bind`` shift down when an earlier handler is removed.
A caller holding an index across a concurrent removal may address a
different handler than the one it bound.
"""

import functools
import logging
import threading
from typing import Any, Awaitable, Callable, Union

from cryptopay.schemas.update import Update, UpdateType, type_key

logger = logging.getLogger(__name__)

Handler = Callable[[Update], Union[None, Awaitable[Any], Any]]


class HandlerIndexError(IndexError):
    pass


class HandlerRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[Handler]] = {}

    def bind(self, update_type: UpdateType | str, handler: Handler) -> int:
        """Append ``handler`` for ``update_type`` and return its index."""
        key = type_key(update_type)
        with self._lock:
            handlers = self._handlers.setdefault(key, [])
            handlers.append(handler)
            index = len(handlers) - 1
        logger.debug(f"Bound handler {index} for {key}")
        return index

    def once(self, update_type: UpdateType | str, handler: Handler) -> int:
        """
        Bind ``handler`` so it fires for the first matching update only.

        The wrapper removes itself by identity rather than by index, and a
        guard keeps a second delivery that already snapshotted the wrapper
        from firing ``handler`` again.
        """
        fired = threading.Lock()

        @functools.wraps(handler)
        def wrapper(update: Update):
            if not fired.acquire(blocking=False):
                return None
            try:
                return handler(update)
            finally:
                self.unbind(update_type, wrapper)

        return self.bind(update_type, wrapper)

    def unbind(self, update_type: UpdateType | str, handler: Handler) -> bool:
        key = type_key(update_type)
        with self._lock:
            handlers = self._handlers.get(key, [])
            for index, bound in enumerate(handlers):
                if bound is handler:
                    del handlers[index]
                    if not handlers:
                        del self._handlers[key]
                    return True
        return False

    def unbind_at(self, update_type: UpdateType | str, index: int) -> None:
        key = type_key(update_type)
        with self._lock:
            handlers = self._handlers.get(key)
            if not handlers or not 0 <= index < len(handlers):
                raise HandlerIndexError(
                    f"no handler at index {index} for update type {key!r}"
                )
            del handlers[index]
            if not handlers:
                del self._handlers[key]
        logger.debug(f"Unbound handler {index} for {key}")

    def unbind_all_for(self, update_type: UpdateType | str) -> None:
        with self._lock:
            self._handlers.pop(type_key(update_type), None)

    def unbind_all(self) -> None:
        with self._lock:
            self._handlers.clear()

    def snapshot(self, update_type: UpdateType | str) -> tuple[Handler, ...]:
        with self._lock:
            return tuple(self._handlers.get(type_key(update_type), ()))

    def count(self, update_type: UpdateType | str) -> int:
        with self._lock:
            return len(self._handlers.get(type_key(update_type), ()))

    def update_types(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._handlers)
