"""Explicit observer lists for application lifecycle events."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .requests import Request

logger = logging.getLogger(__name__)

Hook = Callable[[], Any]
RequestHook = Callable[[Request], Any]
ErrorHook = Callable[[BaseException], Any]


class Listeners:
    """Hooks owned by one application.

    Startup, shutdown and request hooks run in registration order and their
    failures propagate. Error hooks are diagnostics only: each one runs even
    if a previous one failed, and failures are logged rather than raised.
    """

    __slots__ = ("error", "request", "shutdown", "startup")

    def __init__(self) -> None:
        self.startup: list[Hook] = []
        self.shutdown: list[Hook] = []
        self.request: list[RequestHook] = []
        self.error: list[ErrorHook] = []

    def notify_startup(self) -> None:
        for hook in self.startup:
            hook()

    def notify_shutdown(self) -> None:
        for hook in self.shutdown:
            hook()

    def notify_request(self, request: Request) -> None:
        for hook in self.request:
            hook(request)

    def notify_error(self, error: BaseException) -> None:
        for hook in self.error:
            try:
                hook(error)
            except Exception:
                logger.exception("Error listener %r failed", hook)


__all__ = ["ErrorHook", "Hook", "Listeners", "RequestHook"]
