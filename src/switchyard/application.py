"""Application core."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Protocol, Sequence

import msgspec

from .config import AppConfig
from .dependency import Container, DependencyResolver
from .http import Method
from .listeners import ErrorHook, Hook, Listeners, RequestHook
from .middleware import DispatchMiddleware, ErrorMiddleware, Pipeline, PipelineBuilder, Stage
from .requests import Request
from .resolver import HandlerResolver
from .responses import Response
from .routing import Router

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Response]


class Server(Protocol):
    """Transport that feeds requests to a handler until it is stopped."""

    def serve(self, handler: Handler) -> None:  # pragma: no cover - protocol
        ...


class Application:
    """Composition root: routes, middleware, listeners and the ``handle`` entry point.

    Routes and middleware are registered during configuration. The pipeline is
    built on the first :meth:`handle` call (or eagerly by :meth:`startup`);
    from then on both the route table and the middleware list are frozen and
    the application can serve concurrent requests without locking.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        container: DependencyResolver | None = None,
        listeners: Listeners | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.router = Router(head_fallback=self.config.head_fallback)
        self.container = container if container is not None else Container()
        self.listeners = listeners or Listeners()
        self.resolver = HandlerResolver(self.container)
        self._middleware = PipelineBuilder()
        self._errors = ErrorMiddleware(self.listeners.notify_error, debug=self.config.debug)
        self._build_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AppConfig | Mapping[str, Any], **kwargs: Any) -> "Application":
        if isinstance(config, AppConfig):
            return cls(config=config, **kwargs)
        return cls(config=msgspec.convert(config, type=AppConfig), **kwargs)

    # ------------------------------------------------------------------ routing
    def route(
        self,
        pattern: str,
        handler: Any = msgspec.UNSET,
        *,
        methods: Sequence[str | Method],
        name: str | None = None,
    ) -> Any:
        """Register ``handler`` for ``pattern``; without a handler, return a decorator."""

        if handler is msgspec.UNSET:

            def decorator(func: Any) -> Any:
                self.router.add_route(pattern, methods=methods, handler=func, name=name)
                return func

            return decorator
        self.router.add_route(pattern, methods=methods, handler=handler, name=name)
        return handler

    def get(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.GET,), name=name)

    def post(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.POST,), name=name)

    def put(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.PUT,), name=name)

    def patch(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.PATCH,), name=name)

    def delete(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.DELETE,), name=name)

    def options(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.OPTIONS,), name=name)

    def head(self, pattern: str, handler: Any = msgspec.UNSET, *, name: str | None = None) -> Any:
        return self.route(pattern, handler, methods=(Method.HEAD,), name=name)

    def include(self, *handlers: Any) -> None:
        self.router.include(handlers)

    def url_path_for(self, name: str, /, **params: Any) -> str:
        return self.router.url_path_for(name, **params)

    # ------------------------------------------------------------------ middleware
    def use(self, middleware: Stage) -> Stage:
        self._middleware.add(middleware)
        return middleware

    def build_pipeline(self) -> Pipeline:
        pipeline = self._middleware.pipeline
        if pipeline is not None:
            return pipeline
        with self._build_lock:
            self.router.freeze()
            return self._middleware.build(
                self.container,
                first=(self._errors,),
                last=(DispatchMiddleware(self.router, self.resolver),),
            )

    # ------------------------------------------------------------------ lifecycle
    def on_startup(self, func: Hook) -> Hook:
        self.listeners.startup.append(func)
        return func

    def on_shutdown(self, func: Hook) -> Hook:
        self.listeners.shutdown.append(func)
        return func

    def before_request(self, func: RequestHook) -> RequestHook:
        self.listeners.request.append(func)
        return func

    def on_error(self, func: ErrorHook) -> ErrorHook:
        self.listeners.error.append(func)
        return func

    def startup(self) -> None:
        self.listeners.notify_startup()
        pipeline = self.build_pipeline()
        logger.info("%s started with %d routes and %d pipeline stages", self.config.name, len(self.router), len(pipeline))

    def shutdown(self) -> None:
        self.listeners.notify_shutdown()
        logger.info("%s stopped", self.config.name)

    def run(self, server: Server) -> None:
        self.startup()
        try:
            server.serve(self.handle)
        finally:
            self.shutdown()

    # ------------------------------------------------------------------ request handling
    def handle(self, request: Request) -> Response:
        try:
            pipeline = self.build_pipeline()
            self.listeners.notify_request(request)
        except Exception as exc:
            return self._errors.recover(request, exc)
        return pipeline.handle(request)

    def __call__(self, request: Request) -> Response:
        return self.handle(request)


__all__ = ["Application", "Server"]
