"""Turn matched routes into invoked handlers."""

from __future__ import annotations

from typing import Any, Callable

from .dependency import DependencyResolver
from .exceptions import HandlerResolutionFailed, InvalidHandlerResult
from .requests import Request
from .responses import Response, is_response
from .routing import ControllerClass, HandlerRef, Invocable, RouteMatch

Handler = Callable[[Request], Response]


class HandlerResolver:
    """Bind a route's handler reference to something callable with a request.

    Controller classes are always obtained from the dependency resolver and
    never constructed here. Whatever the handler returns is checked before it
    is handed back up the pipeline.
    """

    __slots__ = ("_dependencies",)

    def __init__(self, dependencies: DependencyResolver) -> None:
        self._dependencies = dependencies

    def resolve(self, ref: HandlerRef, pattern: str) -> Handler:
        if isinstance(ref, ControllerClass):
            try:
                instance = self._dependencies.resolve(ref.cls)
            except Exception as exc:
                raise HandlerResolutionFailed(pattern, ref.cls, str(exc)) from exc
            if not callable(instance):
                raise HandlerResolutionFailed(pattern, ref.cls, f"{type(instance).__name__} is not callable")
            return _checked(instance, pattern)
        if isinstance(ref, Invocable):
            return _checked(ref.func, pattern)
        raise HandlerResolutionFailed(pattern, ref.value)

    def dispatch(self, match: RouteMatch, request: Request) -> Response:
        handler = self.resolve(match.handler, match.pattern)
        return handler(request)


def _checked(handler: Callable[[Request], Any], pattern: str) -> Handler:
    def invoke(request: Request) -> Response:
        result = handler(request)
        if not is_response(result):
            raise InvalidHandlerResult(pattern, result)
        return result

    return invoke


__all__ = ["Handler", "HandlerResolver"]
