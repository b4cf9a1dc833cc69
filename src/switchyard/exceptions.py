"""Framework exception types."""

from __future__ import annotations

from typing import Any, Iterable

from .http import Status, ensure_status, reason_phrase
from .serialization import json_encode


class SwitchyardError(Exception):
    """Base error type."""


class HTTPError(SwitchyardError):
    """Structured HTTP error that is msgspec serializable."""

    def __init__(
        self,
        status: int | Status,
        detail: Any,
        *,
        headers: Iterable[tuple[str, str]] = (),
    ) -> None:
        status_code = ensure_status(status)
        super().__init__(status_code, detail)
        self.status = status_code
        self.detail = detail
        self.reason = reason_phrase(status_code)
        self.headers = tuple(headers)

    def to_response_body(self) -> bytes:
        return json_encode({"error": {"status": self.status, "reason": self.reason, "detail": self.detail}})


class RouteNotFound(HTTPError):
    """No registered pattern matches the request path."""

    def __init__(self, method: str, path: str) -> None:
        super().__init__(Status.NOT_FOUND, {"method": method, "path": path})
        self.method = method
        self.path = path


class MethodNotAllowed(HTTPError):
    """The path matches a pattern, but not for the requested method."""

    def __init__(self, method: str, path: str, allowed: Iterable[str]) -> None:
        allowed_methods = tuple(allowed)
        super().__init__(
            Status.METHOD_NOT_ALLOWED,
            {"method": method, "path": path, "allowed": list(allowed_methods)},
            headers=(("allow", ", ".join(allowed_methods)),),
        )
        self.method = method
        self.path = path
        self.allowed = allowed_methods


class HandlerResolutionFailed(SwitchyardError):
    """A route handler could not be turned into an invocable."""

    def __init__(self, pattern: str, handler: Any, reason: str | None = None) -> None:
        message = f"Could not retrieve controller for route {pattern!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.pattern = pattern
        self.handler = handler


class InvalidHandlerResult(SwitchyardError):
    """A handler returned something other than a response."""

    def __init__(self, pattern: str, result: Any) -> None:
        super().__init__(
            f"Controller for route {pattern!r} must return a Response, got {type(result).__name__}"
        )
        self.pattern = pattern
        self.result = result


class InvalidMiddlewareResult(SwitchyardError):
    """A middleware stage returned something other than a response."""

    def __init__(self, stage: Any, result: Any) -> None:
        super().__init__(f"Middleware {stage!r} must return a Response, got {type(result).__name__}")
        self.stage = stage
        self.result = result


class MiddlewareConfigurationError(SwitchyardError):
    """Middleware cannot be added to the pipeline."""


class PipelineFrozenError(MiddlewareConfigurationError):
    """Middleware was added after the pipeline had been built."""


class RouteConfigurationError(SwitchyardError, ValueError):
    """A route definition is malformed or conflicts with another."""


class DuplicateRouteError(RouteConfigurationError):
    def __init__(self, method: str, pattern: str, existing: str) -> None:
        if existing == pattern:
            message = f"Route {method} {pattern} is already registered"
        else:
            message = f"Route {method} {pattern} is shadowed by {method} {existing}"
        super().__init__(message)
        self.method = method
        self.pattern = pattern
        self.existing = existing


class RouteTableFrozenError(RouteConfigurationError):
    """Routes were registered after request handling started."""


class DependencyResolutionError(SwitchyardError, LookupError):
    """The dependency container could not produce an instance."""

    def __init__(self, identifier: Any, detail: str) -> None:
        super().__init__(f"Cannot resolve {identifier!r}: {detail}")
        self.identifier = identifier


__all__ = [
    "DependencyResolutionError",
    "DuplicateRouteError",
    "HTTPError",
    "HandlerResolutionFailed",
    "InvalidHandlerResult",
    "InvalidMiddlewareResult",
    "MethodNotAllowed",
    "MiddlewareConfigurationError",
    "PipelineFrozenError",
    "RouteConfigurationError",
    "RouteNotFound",
    "RouteTableFrozenError",
    "SwitchyardError",
]
