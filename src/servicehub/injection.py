from __future__ import annotations

import inspect
import uuid
from typing import Protocol, cast

from fastapi.params import Depends
from loguru import logger
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Receive, Scope, Send

from .container import ServiceContainer, ServiceScope

SCOPE_STATE_KEY = "_svc_service_scope"
CONTAINER_STATE_ATTR = "service_container"


class _CallableWithSignature(Protocol):
    __signature__: inspect.Signature


def resolve_service_container(app_state: object) -> ServiceContainer | None:
    """Return the container attached to ``app.state``, if any."""
    if app_state is None:
        return None
    container = getattr(app_state, CONTAINER_STATE_ATTR, None)
    if isinstance(container, ServiceContainer):
        return container
    return None


def current_scope(connection: HTTPConnection) -> ServiceScope | None:
    """
    Return the service scope opened for this connection by ``ServiceScopeMiddleware``.

    Only call ``get`` on it from ``async def`` handlers and dependencies.
    FastAPI runs plain ``def`` endpoints in a threadpool, and the container's
    scope stack is not thread-safe (see ``ServiceContainer``), so concurrent
    sync handlers would resolve against each other's scopes.
    """
    scope = getattr(connection.state, SCOPE_STATE_KEY, None)
    if isinstance(scope, ServiceScope):
        return scope
    return None


def Inject(
        name: str,
        /,
        *args: object,
        **kwargs: object,
) -> Depends:
    """
    Create a FastAPI dependency marker for a registered service.

    In endpoints you can write:

        @router.get("/items")
        async def endpoint(db=Inject("db_session")):
            ...

    The service is resolved through the connection's ``ServiceScope`` when
    ``ServiceScopeMiddleware`` is installed, so SCOPED services are shared for
    the duration of one request. Extra arguments are forwarded to FACTORY
    services; ``Depends(...)`` values among them are resolved by FastAPI first.
    """
    if not isinstance(name, str) or not name:
        raise TypeError("Inject() expects a non-empty service name.")

    params = [
        inspect.Parameter(
            "request",
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            annotation=HTTPConnection,
        )
    ]
    pos_dep_map: dict[int, str] = {}
    pos_static: dict[int, object] = {}
    kw_dep_map: dict[str, str] = {}
    kw_static: dict[str, object] = {}

    for i, a in enumerate(args):
        if isinstance(a, Depends):
            param_name = f"_dep_arg_{i}_{uuid.uuid4().hex[:8]}"
            params.append(
                inspect.Parameter(
                    param_name,
                    inspect.Parameter.KEYWORD_ONLY,
                    default=a,
                )
            )
            pos_dep_map[i] = param_name
        else:
            pos_static[i] = a

    for k, v in kwargs.items():
        if isinstance(v, Depends):
            param_name = f"_dep_kw_{k}_{uuid.uuid4().hex[:8]}"
            params.append(
                inspect.Parameter(
                    param_name,
                    inspect.Parameter.KEYWORD_ONLY,
                    default=v,
                )
            )
            kw_dep_map[k] = param_name
        else:
            kw_static[k] = v

    sig = inspect.Signature(params)

    async def _dependency_callable(
        request: HTTPConnection,
        **resolved_deps: object,
    ) -> object:
        services = resolve_service_container(getattr(request.app, "state", None))
        if services is None:
            msg = "Service container not initialized on FastAPI app state (service_container)."
            logger.error(msg)
            raise RuntimeError(msg)

        final_args = [
            resolved_deps[pos_dep_map[i]] if i in pos_dep_map else pos_static[i]
            for i in range(len(args))
        ]
        final_kwargs = {
            k: resolved_deps[kw_dep_map[k]] if k in kw_dep_map else kw_static[k]
            for k in kwargs
        }

        scope = current_scope(request)
        if scope is None:
            return services.get(name, *final_args, **final_kwargs)
        return scope.get(name, *final_args, **final_kwargs)

    _dependency_callable.__name__ = f"inject_{name}"
    _dependency_callable.__qualname__ = _dependency_callable.__name__
    dependency_callable_with_signature = cast(
        _CallableWithSignature, _dependency_callable
    )
    dependency_callable_with_signature.__signature__ = sig

    return Depends(_dependency_callable)


class ServiceScopeMiddleware:
    """
    ASGI middleware that opens one ``ServiceScope`` per HTTP request or
    WebSocket connection and disposes it when the connection ends.

    Usage:

        app.add_middleware(ServiceScopeMiddleware)
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        app_state = getattr(scope.get("app"), "state", None)
        services = resolve_service_container(app_state)
        if services is None:
            await self.app(scope, receive, send)
            return

        # scope["state"] is a plain dict, not the State wrapper object.
        state = scope.get("state")
        if state is None:
            state = {}
            scope["state"] = state

        service_scope = services.create_scope()
        state[SCOPE_STATE_KEY] = service_scope
        try:
            await self.app(scope, receive, send)
        finally:
            service_scope.dispose()
            state.pop(SCOPE_STATE_KEY, None)
