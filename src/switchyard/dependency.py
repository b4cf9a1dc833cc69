"""Dependency injection primitives."""

from __future__ import annotations

import inspect
import threading
from functools import lru_cache
from typing import Any, Callable, Dict, Mapping, Protocol, TypeVar, get_type_hints

from .exceptions import DependencyResolutionError

T = TypeVar("T")
FactoryT = TypeVar("FactoryT", bound=Callable[..., Any])
Factory = Callable[..., Any]


class DependencyResolver(Protocol):
    """Anything that can turn an identifier into an instance."""

    def resolve(self, identifier: Any) -> Any:  # pragma: no cover - protocol
        ...


@lru_cache(maxsize=None)
def _cached_signature(factory: Factory) -> inspect.Signature:
    return inspect.signature(factory)


@lru_cache(maxsize=None)
def _cached_type_hints(factory: Factory) -> Mapping[str, Any]:
    target = factory.__init__ if isinstance(factory, type) else factory
    try:
        return get_type_hints(target)
    except (NameError, TypeError):
        return {}


class Container:
    """Default :class:`DependencyResolver`.

    Identifiers are usually classes. A registered instance is returned as is, a
    registered factory is called with its own annotated parameters resolved
    from the container, and an unregistered class is constructed the same way
    from its ``__init__`` annotations.
    """

    def __init__(self) -> None:
        self._instances: Dict[Any, Any] = {}
        self._factories: Dict[Any, tuple[Factory, bool]] = {}
        self._lock = threading.RLock()

    def register(self, identifier: Any, *, singleton: bool = False) -> Callable[[FactoryT], FactoryT]:
        """Decorator to register a dependency factory."""

        def decorator(factory: FactoryT) -> FactoryT:
            self.provide(identifier, factory, singleton=singleton)
            return factory

        return decorator

    def provide(self, identifier: Any, factory: Factory, *, singleton: bool = False) -> None:
        with self._lock:
            self._instances.pop(identifier, None)
            self._factories[identifier] = (factory, singleton)

    def instance(self, identifier: Any, value: Any) -> None:
        with self._lock:
            self._factories.pop(identifier, None)
            self._instances[identifier] = value

    def has(self, identifier: Any) -> bool:
        return identifier in self._instances or identifier in self._factories

    def resolve(self, identifier: Any) -> Any:
        return self._resolve(identifier, ())

    def _resolve(self, identifier: Any, chain: tuple[Any, ...]) -> Any:
        if identifier in chain:
            path = " -> ".join(_label(item) for item in chain + (identifier,))
            raise DependencyResolutionError(identifier, f"circular dependency {path}")
        if identifier in self._instances:
            return self._instances[identifier]
        entry = self._factories.get(identifier)
        if entry is None:
            if not isinstance(identifier, type):
                raise DependencyResolutionError(identifier, "no dependency registered")
            return self._build(identifier, identifier, chain + (identifier,))
        factory, singleton = entry
        if not singleton:
            return self._build(identifier, factory, chain + (identifier,))
        with self._lock:
            if identifier in self._instances:
                return self._instances[identifier]
            value = self._build(identifier, factory, chain + (identifier,))
            self._instances[identifier] = value
            return value

    def _build(self, identifier: Any, factory: Factory, chain: tuple[Any, ...]) -> Any:
        if inspect.isabstract(factory):
            raise DependencyResolutionError(identifier, "cannot instantiate abstract class")
        try:
            signature = _cached_signature(factory)
        except (TypeError, ValueError) as exc:
            raise DependencyResolutionError(identifier, f"cannot inspect factory {factory!r}") from exc
        hints = _cached_type_hints(factory)
        arguments: Dict[str, Any] = {}
        for name, param in signature.parameters.items():
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            annotation = hints.get(name, param.annotation)
            if annotation is inspect.Signature.empty:
                if param.default is not inspect.Parameter.empty:
                    continue
                raise TypeError(f"Dependency factory {factory} is missing typing for parameter {name}")
            if annotation in (Container, DependencyResolver) and not self.has(annotation):
                arguments[name] = self
                continue
            if not self.has(annotation) and param.default is not inspect.Parameter.empty:
                continue
            arguments[name] = self._resolve(annotation, chain)
        return factory(**arguments)


def _label(identifier: Any) -> str:
    return getattr(identifier, "__qualname__", None) or repr(identifier)


__all__ = ["Container", "DependencyResolver"]
