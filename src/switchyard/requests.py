"""Request primitives."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, TypeVar
from urllib.parse import parse_qsl

import msgspec

from .exceptions import HTTPError
from .http import Status
from .serialization import json_decode

T = TypeVar("T")

_MAX_QUERY_PARAMS = 1024
_EMPTY: Mapping[str, Any] = MappingProxyType({})


class Request:
    """Immutable view of an incoming request.

    Request-scoped values (matched path parameters, anything a middleware
    wants to hand down the chain) live in :attr:`attributes`. They are never
    changed in place: :meth:`with_attribute` and :meth:`with_attributes`
    return a copy, so a stage that receives a request cannot affect what an
    earlier stage sees. Headers and parsed query parameters are exposed as
    read-only mappings for the same reason.
    """

    __slots__ = (
        "_attributes",
        "_body",
        "_json_cache",
        "_query_params",
        "_raw_query",
        "headers",
        "method",
        "path",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        query_string: str | None = None,
        body: bytes | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self.method = method.upper()
        self.path = path or "/"
        self.headers: Mapping[str, str] = MappingProxyType({k.lower(): v for k, v in (headers or {}).items()})
        self._raw_query = query_string or ""
        self._body = body or b""
        self._attributes: Mapping[str, Any] = MappingProxyType(dict(attributes)) if attributes else _EMPTY
        self._json_cache: Any = msgspec.UNSET
        self._query_params: Mapping[str, tuple[str, ...]] | None = None

    def __repr__(self) -> str:
        return f"Request(method={self.method!r}, path={self.path!r})"

    @property
    def attributes(self) -> Mapping[str, Any]:
        return self._attributes

    def attribute(self, name: str, default: Any = None) -> Any:
        return self._attributes.get(name, default)

    def with_attribute(self, name: str, value: Any) -> "Request":
        """Return a copy of the request with ``name`` set to ``value``."""

        return self.with_attributes({name: value})

    def with_attributes(self, values: Mapping[str, Any]) -> "Request":
        """Return a copy of the request with ``values`` merged into its attributes."""

        if not values:
            return self
        merged = dict(self._attributes)
        merged.update(values)
        clone = Request.__new__(Request)
        clone.method = self.method
        clone.path = self.path
        clone.headers = self.headers
        clone._raw_query = self._raw_query
        clone._body = self._body
        clone._attributes = MappingProxyType(merged)
        clone._json_cache = self._json_cache
        clone._query_params = self._query_params
        return clone

    @staticmethod
    def _parse_query(raw: str) -> Mapping[str, tuple[str, ...]]:
        parsed: dict[str, list[str]] = {}
        try:
            pairs = parse_qsl(
                raw,
                keep_blank_values=True,
                max_num_fields=_MAX_QUERY_PARAMS,
            )
        except ValueError as exc:
            raise HTTPError(Status.BAD_REQUEST, {"detail": "too_many_query_parameters"}) from exc
        for key, value in pairs:
            parsed.setdefault(key, []).append(value)
        return MappingProxyType({key: tuple(values) for key, values in parsed.items()})

    @property
    def query_params(self) -> Mapping[str, tuple[str, ...]]:
        if self._query_params is None:
            self._query_params = self._parse_query(self._raw_query)
        return self._query_params

    @property
    def raw_query(self) -> str:
        """Return the raw query string for the request."""

        return self._raw_query

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def json(self, model: type[T] | None = None) -> T | Any:
        """Decode the JSON body using :mod:`msgspec`."""

        if self._json_cache is msgspec.UNSET:
            if not self._body:
                self._json_cache = None
            else:
                self._json_cache = json_decode(self._body)
        if model is None:
            return self._json_cache
        return msgspec.convert(self._json_cache, type=model)

    def text(self) -> str:
        return self._body.decode()

    def body(self) -> bytes:
        return self._body
