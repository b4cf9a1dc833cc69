"""Routing utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterable,
    Iterator,
    Mapping,
    Protocol,
    Sequence,
    runtime_checkable,
)

from .exceptions import DuplicateRouteError, RouteConfigurationError, RouteTableFrozenError
from .http import Method, normalize_method

if TYPE_CHECKING:
    from .requests import Request
    from .responses import Response

_PLACEHOLDER = re.compile(r"^{([a-zA-Z_][a-zA-Z0-9_]*)}$")
_METHOD_ORDER = {method.value: index for index, method in enumerate(Method)}
ROUTE_ATTRIBUTE = "__switchyard_route__"


@runtime_checkable
class Controller(Protocol):
    """A class whose instances answer a request directly.

    Controllers are never constructed by the router: the application asks its
    dependency container for an instance, so constructor arguments can be
    injected.
    """

    def __call__(self, request: "Request") -> "Response":  # pragma: no cover - protocol
        ...


@dataclass(slots=True, frozen=True)
class ControllerClass:
    cls: type[Any]


@dataclass(slots=True, frozen=True)
class Invocable:
    func: Callable[..., Any]


@dataclass(slots=True, frozen=True)
class Unresolvable:
    value: Any


HandlerRef = ControllerClass | Invocable | Unresolvable


def handler_ref(handler: Any) -> HandlerRef:
    """Classify ``handler`` once, when the route is registered."""

    if isinstance(handler, (ControllerClass, Invocable, Unresolvable)):
        return handler
    if isinstance(handler, type):
        if issubclass(handler, Controller):
            return ControllerClass(handler)
        return Unresolvable(handler)
    if callable(handler):
        return Invocable(handler)
    return Unresolvable(handler)


@dataclass(slots=True, frozen=True)
class Segment:
    value: str
    is_placeholder: bool = False


@dataclass(slots=True, frozen=True)
class Route:
    method: str
    pattern: str
    handler: HandlerRef
    segments: tuple[Segment, ...]
    name: str | None = None

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(segment.value for segment in self.segments if segment.is_placeholder)

    @property
    def shape(self) -> tuple[str | None, ...]:
        return tuple(None if segment.is_placeholder else segment.value for segment in self.segments)

    def capture(self, parts: Sequence[str]) -> dict[str, str] | None:
        """Return the placeholder values for ``parts`` or ``None`` on mismatch."""

        if len(parts) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for segment, part in zip(self.segments, parts):
            if segment.is_placeholder:
                if not part:
                    return None
                params[segment.value] = part
            elif segment.value != part:
                return None
        return params


@dataclass(slots=True, frozen=True)
class RouteMatch:
    route: Route
    params: Mapping[str, str]

    @property
    def handler(self) -> HandlerRef:
        return self.route.handler

    @property
    def pattern(self) -> str:
        return self.route.pattern


@dataclass(slots=True, frozen=True)
class NoRoute:
    method: str
    path: str


@dataclass(slots=True, frozen=True)
class MethodMismatch:
    method: str
    path: str
    allowed: tuple[str, ...]


MatchResult = RouteMatch | NoRoute | MethodMismatch


@dataclass(slots=True, frozen=True)
class RouteSpec:
    pattern: str
    methods: tuple[str, ...]
    name: str | None = None


class Router:
    """Route table and matcher.

    Routes are kept per method and bucketed by segment count, so a lookup only
    compares patterns that could possibly fit. Within a bucket registration
    order is preserved and the first matching pattern wins.
    """

    def __init__(self, *, head_fallback: bool = True) -> None:
        self.head_fallback = head_fallback
        self._routes: list[Route] = []
        self._routes_by_method: dict[str, dict[int, list[Route]]] = {}
        self._named_routes: dict[str, Route] = {}
        self._frozen = False

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, method: str | Method, pattern: str, handler: Any, *, name: str | None = None) -> Route:
        if self._frozen:
            raise RouteTableFrozenError(f"Cannot register {pattern!r} once requests are being handled")
        verb = normalize_method(method)
        normalized, segments = compile_pattern(pattern)
        route = Route(method=verb, pattern=normalized, handler=handler_ref(handler), segments=segments, name=name)
        bucket = self._routes_by_method.setdefault(verb, {}).setdefault(len(segments), [])
        for existing in bucket:
            if existing.shape == route.shape:
                raise DuplicateRouteError(verb, normalized, existing.pattern)
        if name is not None:
            named = self._named_routes.get(name)
            if named is not None and named.pattern != normalized:
                raise RouteConfigurationError(f"Route name {name!r} already refers to {named.pattern!r}")
            self._named_routes.setdefault(name, route)
        bucket.append(route)
        self._routes.append(route)
        return route

    def add_route(
        self,
        pattern: str,
        *,
        methods: Sequence[str | Method],
        handler: Any,
        name: str | None = None,
    ) -> tuple[Route, ...]:
        normalized_methods = tuple(dict.fromkeys(normalize_method(m) for m in methods))
        return tuple(self.register(method, pattern, handler, name=name) for method in normalized_methods)

    def include(self, handlers: Iterable[Any]) -> None:
        for handler in handlers:
            spec: RouteSpec | None = getattr(handler, ROUTE_ATTRIBUTE, None)
            if spec is None:
                raise ValueError(f"Handler {handler!r} missing @route decorator metadata")
            self.add_route(spec.pattern, methods=spec.methods, handler=handler, name=spec.name)

    def match(self, method: str, path: str) -> MatchResult:
        method = method.upper()
        parts = _split(path)
        found = self._find(method, parts)
        if found is None and method == Method.HEAD.value and self.head_fallback:
            found = self._find(Method.GET.value, parts)
        if found is not None:
            route, params = found
            return RouteMatch(route=route, params=params)
        allowed = [
            other
            for other in self._routes_by_method
            if other != method and self._find(other, parts) is not None
        ]
        if allowed:
            if self.head_fallback and Method.GET.value in allowed and Method.HEAD.value not in allowed:
                allowed.append(Method.HEAD.value)
            allowed.sort(key=_METHOD_ORDER.__getitem__)
            return MethodMismatch(method=method, path=path, allowed=tuple(allowed))
        return NoRoute(method=method, path=path)

    def url_path_for(self, name: str, /, **params: Any) -> str:
        """Build the path for the route registered as ``name``."""

        route = self._named_routes.get(name)
        if route is None:
            raise LookupError(f"Route {name!r} not found")
        missing = [param for param in route.param_names if param not in params]
        if missing:
            raise LookupError(f"Route {name!r} requires parameters: {', '.join(missing)}")
        return "/" + "/".join(
            str(params[segment.value]) if segment.is_placeholder else segment.value for segment in route.segments
        )

    def _find(self, method: str, parts: Sequence[str]) -> tuple[Route, dict[str, str]] | None:
        buckets = self._routes_by_method.get(method)
        if not buckets:
            return None
        for route in buckets.get(len(parts), ()):
            params = route.capture(parts)
            if params is not None:
                return route, params
        return None


def route(
    pattern: str,
    *,
    methods: Sequence[str | Method],
    name: str | None = None,
) -> Callable[[Any], Any]:
    """Attach route metadata to a function or controller class for :meth:`Router.include`."""

    def decorator(handler: Any) -> Any:
        spec = RouteSpec(pattern=pattern, methods=tuple(normalize_method(m) for m in methods), name=name)
        setattr(handler, ROUTE_ATTRIBUTE, spec)
        return handler

    return decorator


def get(pattern: str, *, name: str | None = None) -> Callable[[Any], Any]:
    return route(pattern, methods=[Method.GET], name=name)


def post(pattern: str, *, name: str | None = None) -> Callable[[Any], Any]:
    return route(pattern, methods=[Method.POST], name=name)


def put(pattern: str, *, name: str | None = None) -> Callable[[Any], Any]:
    return route(pattern, methods=[Method.PUT], name=name)


def patch(pattern: str, *, name: str | None = None) -> Callable[[Any], Any]:
    return route(pattern, methods=[Method.PATCH], name=name)


def delete(pattern: str, *, name: str | None = None) -> Callable[[Any], Any]:
    return route(pattern, methods=[Method.DELETE], name=name)


def compile_pattern(pattern: str) -> tuple[str, tuple[Segment, ...]]:
    """Split ``pattern`` into literal and placeholder segments."""

    normalized = pattern.strip()
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    segments: list[Segment] = []
    seen: set[str] = set()
    for part in _split(normalized):
        placeholder = _PLACEHOLDER.match(part)
        if placeholder is not None:
            name = placeholder.group(1)
            if name in seen:
                raise RouteConfigurationError(f"Duplicate placeholder {name!r} in {pattern!r}")
            seen.add(name)
            segments.append(Segment(name, is_placeholder=True))
        elif "{" in part or "}" in part:
            raise RouteConfigurationError(f"Unsupported placeholder segment {part!r} in {pattern!r}")
        else:
            segments.append(Segment(part))
    return normalized, tuple(segments)


def _split(path: str) -> list[str]:
    return path[1:].split("/") if path.startswith("/") else path.split("/")


__all__ = [
    "Controller",
    "ControllerClass",
    "HandlerRef",
    "Invocable",
    "MatchResult",
    "MethodMismatch",
    "NoRoute",
    "Route",
    "RouteMatch",
    "RouteSpec",
    "Router",
    "Segment",
    "Unresolvable",
    "compile_pattern",
    "delete",
    "get",
    "handler_ref",
    "patch",
    "post",
    "put",
    "route",
]
