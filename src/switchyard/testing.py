"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode

from .application import Application
from .requests import Request
from .responses import Response
from .serialization import json_encode


class TestClient:
    """Test client that executes requests in-process."""

    __test__ = False

    def __init__(self, app: Application) -> None:
        self.app = app

    def __enter__(self) -> "TestClient":
        self.app.startup()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.app.shutdown()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        payload = b""
        request_headers = dict(headers or {})
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        request = Request(
            method=method,
            path=path,
            headers=request_headers,
            query_string=urlencode(query or {}, doseq=True),
            body=payload,
        )
        return self.app.handle(request)

    def get(
        self,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self.request("GET", path, query=query, headers=headers)

    def head(self, path: str, *, headers: Mapping[str, str] | None = None) -> Response:
        return self.request("HEAD", path, headers=headers)

    def post(
        self,
        path: str,
        *,
        json: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self.request("POST", path, json=json, headers=headers)

    def put(
        self,
        path: str,
        *,
        json: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self.request("PUT", path, json=json, headers=headers)

    def delete(self, path: str, *, headers: Mapping[str, str] | None = None) -> Response:
        return self.request("DELETE", path, headers=headers)
