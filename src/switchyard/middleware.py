"""Middleware chaining primitives."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol, Union, runtime_checkable

from msgspec import structs

from .dependency import DependencyResolver
from .exceptions import (
    HTTPError,
    InvalidMiddlewareResult,
    MethodNotAllowed,
    MiddlewareConfigurationError,
    PipelineFrozenError,
    RouteNotFound,
)
from .http import Method, Status, is_server_error, reason_phrase
from .requests import Request
from .resolver import HandlerResolver
from .responses import JSONResponse, PlainTextResponse, Response, exception_to_response, is_response
from .routing import MethodMismatch, NoRoute, Router

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Response]
MiddlewareCallable = Callable[[Request, Handler], Response]
ErrorObserver = Callable[[BaseException], Any]


@runtime_checkable
class Middleware(Protocol):
    def process(self, request: Request, handler: Handler) -> Response:  # pragma: no cover - protocol
        ...


class CallableMiddleware:
    """Adapt a plain ``(request, handler)`` function to :class:`Middleware`."""

    __slots__ = ("_func",)

    def __init__(self, func: MiddlewareCallable) -> None:
        self._func = func

    def __repr__(self) -> str:
        return f"CallableMiddleware({self._func!r})"

    def process(self, request: Request, handler: Handler) -> Response:
        return self._func(request, handler)


class ErrorMiddleware:
    """Failure boundary around the rest of the pipeline.

    Any exception raised further down is reported to ``observer`` and turned
    into an error response. The observer cannot affect the response; if it
    raises, the failure is logged and dropped.
    """

    __slots__ = ("_debug", "_observer")

    def __init__(self, observer: ErrorObserver | None = None, *, debug: bool = False) -> None:
        self._observer = observer
        self._debug = debug

    def process(self, request: Request, handler: Handler) -> Response:
        try:
            return handler(request)
        except Exception as exc:
            return self.recover(request, exc)

    def recover(self, request: Request, exc: Exception) -> Response:
        self._notify(exc)
        try:
            response = self.error_response(exc)
        except Exception:
            logger.exception("Could not render error response for %r", exc)
            response = PlainTextResponse(
                reason_phrase(Status.INTERNAL_SERVER_ERROR),
                status=int(Status.INTERNAL_SERVER_ERROR),
            )
        if is_server_error(response.status):
            logger.error("Unhandled error for %s %s", request.method, request.path, exc_info=exc)
        else:
            logger.debug("%s %s -> %d", request.method, request.path, response.status)
        return response

    def error_response(self, exc: Exception) -> Response:
        if isinstance(exc, HTTPError):
            return exception_to_response(exc)
        status = int(Status.INTERNAL_SERVER_ERROR)
        detail: Any = "internal_error"
        if self._debug:
            detail = {"type": type(exc).__name__, "message": str(exc)}
        return JSONResponse(
            {"error": {"status": status, "reason": reason_phrase(status), "detail": detail}},
            status=status,
        )

    def _notify(self, exc: Exception) -> None:
        if self._observer is None:
            return
        try:
            self._observer(exc)
        except Exception:
            logger.exception("Error observer failed")


class DispatchMiddleware:
    """Terminal stage: match the route and invoke its handler.

    A HEAD request answered by a GET route keeps the status and headers but
    drops the body.
    """

    __slots__ = ("_resolver", "_router")

    def __init__(self, router: Router, resolver: HandlerResolver) -> None:
        self._router = router
        self._resolver = resolver

    def process(self, request: Request, handler: Handler) -> Response:
        result = self._router.match(request.method, request.path)
        if isinstance(result, MethodMismatch):
            raise MethodNotAllowed(result.method, result.path, result.allowed)
        if isinstance(result, NoRoute):
            raise RouteNotFound(result.method, result.path)
        response = self._resolver.dispatch(result, request.with_attributes(result.params))
        if request.method == Method.HEAD.value and result.route.method != Method.HEAD.value:
            return structs.replace(response, body=b"")
        return response


class Pipeline:
    """Immutable, ordered chain of middleware."""

    __slots__ = ("_stages",)

    def __init__(self, stages: Iterable[Middleware]) -> None:
        self._stages = tuple(stages)

    def __len__(self) -> int:
        return len(self._stages)

    @property
    def stages(self) -> tuple[Middleware, ...]:
        return self._stages

    def handle(self, request: Request) -> Response:
        return self._invoke(0, request)

    def _invoke(self, index: int, request: Request) -> Response:
        if index >= len(self._stages):
            raise RuntimeError("Middleware pipeline exhausted without producing a response")
        stage = self._stages[index]
        response = stage.process(request, _NextHandler(self, index + 1))
        if not is_response(response):
            raise InvalidMiddlewareResult(stage, response)
        return response


class _NextHandler:
    __slots__ = ("_index", "_pipeline")

    def __init__(self, pipeline: Pipeline, index: int) -> None:
        self._pipeline = pipeline
        self._index = index

    def __call__(self, request: Request) -> Response:
        return self._pipeline._invoke(self._index, request)


Stage = Union[Middleware, type, MiddlewareCallable]


class PipelineBuilder:
    """Collect middleware during configuration, then freeze it into a :class:`Pipeline`.

    Middleware classes are resolved through the dependency resolver once, when
    the pipeline is built.
    """

    def __init__(self) -> None:
        self._stages: list[Middleware | type] = []
        self._pipeline: Pipeline | None = None

    def __len__(self) -> int:
        return len(self._stages)

    @property
    def built(self) -> bool:
        return self._pipeline is not None

    @property
    def pipeline(self) -> Pipeline | None:
        return self._pipeline

    def add(self, stage: Stage) -> None:
        if self._pipeline is not None:
            raise PipelineFrozenError("Middleware cannot be added once the pipeline has been built")
        self._stages.append(_normalize_stage(stage))

    def build(
        self,
        dependencies: DependencyResolver,
        *,
        first: Iterable[Middleware] = (),
        last: Iterable[Middleware] = (),
    ) -> Pipeline:
        if self._pipeline is not None:
            return self._pipeline
        resolved = [_resolve_stage(stage, dependencies) for stage in self._stages]
        self._pipeline = Pipeline((*first, *resolved, *last))
        logger.debug("Built middleware pipeline with %d stages", len(self._pipeline))
        return self._pipeline


def _normalize_stage(stage: Any) -> Middleware | type:
    if isinstance(stage, type):
        if issubclass(stage, Middleware):
            return stage
        raise MiddlewareConfigurationError(
            f"Middleware class {stage.__qualname__} must implement process(request, handler)"
        )
    if isinstance(stage, Middleware):
        return stage
    if callable(stage):
        return CallableMiddleware(stage)
    raise MiddlewareConfigurationError(
        f"Middleware must be a callable or implement process(request, handler), got {stage!r}"
    )


def _resolve_stage(stage: Middleware | type, dependencies: DependencyResolver) -> Middleware:
    if not isinstance(stage, type):
        return stage
    try:
        instance = dependencies.resolve(stage)
    except Exception as exc:
        raise MiddlewareConfigurationError(f"Could not resolve middleware {stage.__qualname__}: {exc}") from exc
    if not isinstance(instance, Middleware):
        raise MiddlewareConfigurationError(f"Resolved {stage.__qualname__} does not implement process()")
    return instance


__all__ = [
    "CallableMiddleware",
    "DispatchMiddleware",
    "ErrorMiddleware",
    "ErrorObserver",
    "Handler",
    "Middleware",
    "MiddlewareCallable",
    "Pipeline",
    "PipelineBuilder",
]
