from __future__ import annotations

import threading
from typing import Any

import pytest

from switchyard.application import Application
from switchyard.config import AppConfig
from switchyard.dependency import Container
from switchyard.exceptions import (
    DuplicateRouteError,
    HandlerResolutionFailed,
    InvalidHandlerResult,
    InvalidMiddlewareResult,
    MethodNotAllowed,
    MiddlewareConfigurationError,
    PipelineFrozenError,
    RouteNotFound,
    RouteTableFrozenError,
)
from switchyard.requests import Request
from switchyard.responses import JSONResponse, PlainTextResponse, Response
from switchyard.routing import get, post
from switchyard.serialization import json_decode
from switchyard.testing import TestClient


class UserStore:
    def __init__(self) -> None:
        self.users = {"42": "Ada"}

    def name(self, user_id: str) -> str:
        return self.users.get(user_id, "unknown")


class UserController:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def __call__(self, request: Request) -> Response:
        user_id = request.attribute("id")
        return JSONResponse({"id": user_id, "name": self.store.name(user_id)})


@post("/users")
class CreateUser:
    def __call__(self, request: Request) -> Response:
        return JSONResponse(request.json(), status=201)


@get("/health")
def health(request: Request) -> Response:
    return PlainTextResponse("ok")


class AuthMiddleware:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def process(self, request: Request, handler) -> Response:
        if request.header("authorization") != "token":
            return PlainTextResponse("unauthorized", status=401)
        return handler(request.with_attribute("user", self.store.name("42")))


def show_user(request: Request) -> Response:
    return JSONResponse({"id": request.attribute("id")})


def build_app(**config: Any) -> Application:
    app = Application(AppConfig(**config))
    app.get("/users/{id}", show_user)
    return app


def error_body(response: Response) -> dict[str, Any]:
    return json_decode(response.body)["error"]


def test_get_user_reflects_captured_id() -> None:
    client = TestClient(build_app())
    response = client.get("/users/42")
    assert response.status == 200
    assert json_decode(response.body) == {"id": "42"}


def test_wrong_method_yields_method_not_allowed() -> None:
    client = TestClient(build_app())
    response = client.post("/users/42")
    assert response.status == 405
    assert response.header("allow") == "GET, HEAD"
    assert error_body(response)["detail"]["allowed"] == ["GET", "HEAD"]


def test_unknown_path_yields_not_found() -> None:
    client = TestClient(build_app())
    response = client.get("/users")
    assert response.status == 404
    assert error_body(response)["detail"] == {"method": "GET", "path": "/users"}


def test_verb_helpers_register_routes() -> None:
    app = Application()
    for verb in ("get", "post", "put", "patch", "delete", "options", "head"):
        getattr(app, verb)("/resource", lambda request, verb=verb: PlainTextResponse(verb))
    client = TestClient(app)
    for verb in ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"):
        assert client.request(verb, "/resource").body == verb.lower().encode()


def test_verb_helpers_work_as_decorators() -> None:
    app = Application()

    @app.put("/items/{item_id}")
    def replace(request: Request) -> Response:
        return PlainTextResponse(request.attribute("item_id"))

    assert TestClient(app).put("/items/9").body == b"9"


def test_controller_class_is_resolved_with_dependencies() -> None:
    container = Container()
    store = UserStore()
    container.instance(UserStore, store)
    app = Application(container=container)
    app.get("/users/{id}", UserController)
    response = TestClient(app).get("/users/42")
    assert json_decode(response.body) == {"id": "42", "name": "Ada"}


def test_include_registers_decorated_handlers() -> None:
    app = Application()
    app.include(health, CreateUser)
    client = TestClient(app)
    assert client.get("/health").body == b"ok"
    created = client.post("/users", json={"name": "Grace"})
    assert created.status == 201
    assert json_decode(created.body) == {"name": "Grace"}


def test_middleware_order_and_unwind() -> None:
    events: list[str] = []
    app = Application()

    def stage(name: str):
        def middleware(request: Request, handler) -> Response:
            events.append(f"{name}:in")
            response = handler(request)
            events.append(f"{name}:out")
            return response

        return middleware

    @app.get("/ping")
    def ping(request: Request) -> Response:
        events.append("dispatch")
        return PlainTextResponse("pong")

    app.use(stage("a"))
    app.use(stage("b"))
    assert TestClient(app).get("/ping").body == b"pong"
    assert events == ["a:in", "b:in", "dispatch", "b:out", "a:out"]


def test_short_circuit_skips_later_stages_and_dispatch() -> None:
    events: list[str] = []
    app = Application()

    def deny(request: Request, handler) -> Response:
        events.append("deny")
        return PlainTextResponse("denied", status=403)

    def later(request: Request, handler) -> Response:
        events.append("later")
        return handler(request)

    @app.get("/secret")
    def secret(request: Request) -> Response:
        events.append("dispatch")
        return PlainTextResponse("secret")

    app.use(deny)
    app.use(later)
    response = TestClient(app).get("/secret")
    assert response.status == 403
    assert events == ["deny"]


def test_middleware_class_is_resolved_once_with_dependencies() -> None:
    container = Container()
    container.instance(UserStore, UserStore())
    app = Application(container=container)
    app.use(AuthMiddleware)

    @app.get("/me")
    def me(request: Request) -> Response:
        return PlainTextResponse(request.attribute("user"))

    client = TestClient(app)
    assert client.get("/me").status == 401
    assert client.get("/me", headers={"Authorization": "token"}).body == b"Ada"
    pipeline = app.build_pipeline()
    assert sum(isinstance(stage, AuthMiddleware) for stage in pipeline.stages) == 1


def test_failure_is_contained_and_observed_once_per_call() -> None:
    app = Application()
    observed: list[BaseException] = []
    app.on_error(observed.append)

    @app.get("/boom")
    def boom(request: Request) -> Response:
        raise RuntimeError("boom")

    client = TestClient(app)
    for attempt in range(1, 4):
        response = client.get("/boom")
        assert response.status == 500
        assert len(observed) == attempt
    assert all(isinstance(exc, RuntimeError) for exc in observed)


def test_routing_errors_reach_error_listeners() -> None:
    app = build_app()
    observed: list[BaseException] = []
    app.on_error(observed.append)
    client = TestClient(app)
    client.get("/nowhere")
    client.delete("/users/1")
    assert isinstance(observed[0], RouteNotFound)
    assert isinstance(observed[1], MethodNotAllowed)


def test_failing_error_listener_does_not_prevent_response() -> None:
    app = Application()
    seen: list[BaseException] = []

    @app.on_error
    def broken(exc: BaseException) -> None:
        raise RuntimeError("listener failed")

    app.on_error(seen.append)

    @app.get("/boom")
    def boom(request: Request) -> Response:
        raise ValueError("original")

    response = TestClient(app).get("/boom")
    assert response.status == 500
    assert isinstance(seen[0], ValueError)


def test_invalid_handler_result_maps_to_500() -> None:
    app = Application(AppConfig(debug=True))
    observed: list[BaseException] = []
    app.on_error(observed.append)
    app.get("/bad", lambda request: "just a string")
    response = TestClient(app).get("/bad")
    assert response.status == 500
    assert error_body(response)["detail"]["type"] == "InvalidHandlerResult"
    assert isinstance(observed[0], InvalidHandlerResult)


def test_middleware_without_response_maps_to_500() -> None:
    app = build_app(debug=True)
    observed: list[BaseException] = []
    app.on_error(observed.append)

    def forgetful(request: Request, handler) -> Response:
        handler(request)

    app.use(forgetful)
    response = app.handle(Request(method="GET", path="/users/42"))
    assert isinstance(response, Response)
    assert response.status == 500
    assert error_body(response)["detail"]["type"] == "InvalidMiddlewareResult"
    assert len(observed) == 1
    assert isinstance(observed[0], InvalidMiddlewareResult)


def test_url_path_for_named_routes() -> None:
    app = Application()
    app.get("/users/{id}", show_user, name="show_user")
    path = app.url_path_for("show_user", id=42)
    assert path == "/users/42"
    assert json_decode(TestClient(app).get(path).body) == {"id": "42"}


def test_unresolvable_handler_maps_to_500() -> None:
    app = Application()
    observed: list[BaseException] = []
    app.on_error(observed.append)
    app.get("/answer", 42)
    response = TestClient(app).get("/answer")
    assert response.status == 500
    assert isinstance(observed[0], HandlerResolutionFailed)
    assert observed[0].pattern == "/answer"


def test_handle_is_idempotent() -> None:
    app = build_app()
    first = app.handle(Request(method="GET", path="/users/7"))
    second = app.handle(Request(method="GET", path="/users/7"))
    assert first == second


def test_use_after_build_is_rejected() -> None:
    app = build_app()
    TestClient(app).get("/users/1")
    with pytest.raises(PipelineFrozenError):
        app.use(lambda request, handler: handler(request))


def test_routes_after_build_are_rejected() -> None:
    app = build_app()
    app.build_pipeline()
    with pytest.raises(RouteTableFrozenError):
        app.get("/late", show_user)


def test_use_rejects_unusable_middleware() -> None:
    app = Application()
    with pytest.raises(MiddlewareConfigurationError):
        app.use("not middleware")  # type: ignore[arg-type]


def test_duplicate_route_is_rejected() -> None:
    app = build_app()
    with pytest.raises(DuplicateRouteError):
        app.get("/users/{id}", show_user)


def test_pipeline_build_failure_becomes_response() -> None:
    class Unbuildable:
        def __init__(self, secret: "Missing") -> None:  # noqa: F821
            self.secret = secret

        def process(self, request: Request, handler) -> Response:
            return handler(request)

    app = build_app()
    observed: list[BaseException] = []
    app.on_error(observed.append)
    app.use(Unbuildable)
    response = app.handle(Request(method="GET", path="/users/1"))
    assert response.status == 500
    assert isinstance(observed[0], MiddlewareConfigurationError)


def test_before_request_listeners_run_per_request() -> None:
    app = build_app()
    seen: list[str] = []
    app.before_request(lambda request: seen.append(request.path))
    client = TestClient(app)
    client.get("/users/1")
    client.get("/missing")
    assert seen == ["/users/1", "/missing"]


def test_before_request_failure_becomes_response() -> None:
    app = build_app()

    @app.before_request
    def reject(request: Request) -> None:
        raise RuntimeError("not today")

    assert app.handle(Request(method="GET", path="/users/1")).status == 500


def test_lifecycle_listeners_and_test_client() -> None:
    app = build_app()
    events: list[str] = []
    app.on_startup(lambda: events.append("startup"))
    app.on_shutdown(lambda: events.append("shutdown"))
    with TestClient(app) as client:
        assert app.router.frozen
        assert client.get("/users/3").status == 200
        events.append("request")
    assert events == ["startup", "request", "shutdown"]


def test_run_hands_handler_to_server_and_shuts_down() -> None:
    app = build_app()
    events: list[str] = []
    app.on_startup(lambda: events.append("startup"))
    app.on_shutdown(lambda: events.append("shutdown"))

    class FakeServer:
        def serve(self, handler) -> None:
            events.append("serve")
            response = handler(Request(method="GET", path="/users/5"))
            events.append(str(response.status))
            raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        app.run(FakeServer())
    assert events == ["startup", "serve", "200", "shutdown"]


def test_head_request_falls_back_to_get_route() -> None:
    client = TestClient(build_app())
    response = client.head("/users/42")
    assert response.status == 200
    assert response.header("content-type") == "application/json"
    assert response.body == b""


def test_application_is_callable() -> None:
    app = build_app()
    assert app(Request(method="GET", path="/users/8")).status == 200


def test_concurrent_requests_share_pipeline() -> None:
    app = build_app()
    results: list[bytes] = []
    lock = threading.Lock()

    def worker(user_id: int) -> None:
        response = app.handle(Request(method="GET", path=f"/users/{user_id}"))
        with lock:
            results.append(response.body)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert sorted(json_decode(body)["id"] for body in results) == sorted(str(i) for i in range(16))
