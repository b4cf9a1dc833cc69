"""Minimal Switchyard application served by the standard library WSGI server.

Run ``python example.py`` and try ``curl localhost:8000/users/42``. The
transport adapter below is deliberately tiny: Switchyard itself never touches
sockets, it only turns a :class:`~switchyard.requests.Request` into a
:class:`~switchyard.responses.Response`.

Override ``SWITCHYARD_HOST``, ``SWITCHYARD_PORT`` or ``SWITCHYARD_DEBUG`` to
change where the server listens and whether 500 responses include details.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Iterable
from wsgiref.simple_server import make_server

from switchyard import AppConfig, Application, JSONResponse, PlainTextResponse, Request, Response
from switchyard.http import reason_phrase

Handler = Callable[[Request], Response]


class UserDirectory:
    """In-memory lookup injected into :class:`UserController`."""

    def __init__(self) -> None:
        self._users = {"42": "Ada Lovelace", "7": "Grace Hopper"}

    def find(self, user_id: str) -> str | None:
        return self._users.get(user_id)


class UserController:
    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    def __call__(self, request: Request) -> Response:
        user_id = request.attribute("id")
        name = self.directory.find(user_id)
        if name is None:
            return JSONResponse({"id": user_id, "detail": "unknown user"}, status=404)
        return JSONResponse({"id": user_id, "name": name})


class WSGIServer:
    """Adapter satisfying :class:`~switchyard.application.Server`."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port

    def serve(self, handler: Handler) -> None:
        def wsgi_app(environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
            length = int(environ.get("CONTENT_LENGTH") or 0)
            headers = {
                key[5:].replace("_", "-").lower(): value
                for key, value in environ.items()
                if key.startswith("HTTP_")
            }
            request = Request(
                method=environ["REQUEST_METHOD"],
                path=environ.get("PATH_INFO") or "/",
                headers=headers,
                query_string=environ.get("QUERY_STRING", ""),
                body=environ["wsgi.input"].read(length) if length else b"",
            )
            response = handler(request)
            start_response(f"{response.status} {reason_phrase(response.status)}", list(response.headers))
            return [response.body]

        with make_server(self.host, self.port, wsgi_app) as httpd:
            try:
                httpd.serve_forever()
            except KeyboardInterrupt:
                pass


def create_app() -> Application:
    """Instantiate the demo application."""

    config = AppConfig(
        name="switchyard-example",
        debug=os.getenv("SWITCHYARD_DEBUG", "0").lower() in {"1", "true", "yes", "on"},
    )
    app = Application(config)

    @app.get("/")
    def root(request: Request) -> Response:
        return PlainTextResponse("Switchyard is ready")

    app.get("/users/{id}", UserController)

    def served_by_header(request: Request, handler: Handler) -> Response:
        response = handler(request)
        return response.with_headers([("x-served-by", config.name)])

    app.use(served_by_header)
    app.on_error(lambda exc: logging.getLogger("example").warning("request failed: %r", exc))
    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    host = os.getenv("SWITCHYARD_HOST", "127.0.0.1")
    port = int(os.getenv("SWITCHYARD_PORT", "8000"))
    print("Serving Switchyard example at http://%s:%d" % (host, port))
    create_app().run(WSGIServer(host, port))


if __name__ == "__main__":
    main()
