"""Switchyard request-dispatch core: routing, middleware and handler resolution."""

from .application import Application, Server
from .config import AppConfig
from .dependency import Container, DependencyResolver
from .exceptions import (
    DependencyResolutionError,
    DuplicateRouteError,
    HandlerResolutionFailed,
    HTTPError,
    InvalidHandlerResult,
    InvalidMiddlewareResult,
    MethodNotAllowed,
    MiddlewareConfigurationError,
    PipelineFrozenError,
    RouteConfigurationError,
    RouteNotFound,
    RouteTableFrozenError,
    SwitchyardError,
)
from .http import Method, Status
from .listeners import Listeners
from .middleware import CallableMiddleware, ErrorMiddleware, Middleware, Pipeline, PipelineBuilder
from .requests import Request
from .resolver import HandlerResolver
from .responses import JSONResponse, PlainTextResponse, Response
from .routing import Controller, Router, delete, get, patch, post, put, route
from .testing import TestClient

__all__ = [
    "AppConfig",
    "Application",
    "CallableMiddleware",
    "Container",
    "Controller",
    "DependencyResolutionError",
    "DependencyResolver",
    "DuplicateRouteError",
    "ErrorMiddleware",
    "HTTPError",
    "HandlerResolutionFailed",
    "HandlerResolver",
    "InvalidHandlerResult",
    "InvalidMiddlewareResult",
    "JSONResponse",
    "Listeners",
    "Method",
    "MethodNotAllowed",
    "Middleware",
    "MiddlewareConfigurationError",
    "Pipeline",
    "PipelineBuilder",
    "PipelineFrozenError",
    "PlainTextResponse",
    "Request",
    "Response",
    "RouteConfigurationError",
    "RouteNotFound",
    "RouteTableFrozenError",
    "Router",
    "Server",
    "Status",
    "SwitchyardError",
    "TestClient",
    "delete",
    "get",
    "patch",
    "post",
    "put",
    "route",
]
