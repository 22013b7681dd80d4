from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Sequence

from fastapi import FastAPI

from .container import ServiceContainer
from .injection import CONTAINER_STATE_ATTR, ServiceScopeMiddleware
from .registry import collect_service_definitions, register_services_from_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerSettings:
    service_packages: tuple[str, ...] = ()
    strict: bool = True
    allow_private_modules: bool = False
    auto_add_scope_middleware: bool = True
    clear_on_shutdown: bool = True


def _normalize_service_packages(
    service_packages: str | Sequence[str] | None,
) -> tuple[str, ...]:
    if service_packages is None:
        return ()
    if isinstance(service_packages, str):
        return (service_packages,)
    return tuple(p for p in service_packages if p)


def _has_middleware(app: FastAPI, middleware_cls: type[object]) -> bool:
    for middleware in app.user_middleware:
        if getattr(middleware, "cls", None) is middleware_cls:
            return True
    return False


def install_container(
    app: FastAPI,
    *,
    service_packages: str | Sequence[str] | None = None,
    container: ServiceContainer | None = None,
    strict: bool = True,
    allow_private_modules: bool = False,
    auto_add_scope_middleware: bool = True,
    clear_on_shutdown: bool = True,
) -> ContainerSettings:
    """
    Install a service container into a FastAPI app.

    On startup the container (``container`` or a new one) is attached to
    ``app.state.service_container`` and every ``@Service`` class found in
    ``service_packages`` is registered into it. Services already registered
    from the same class are kept, so a caller-owned container with
    ``clear_on_shutdown=False`` survives repeated startups. On shutdown the
    container is cleared when ``clear_on_shutdown`` is set.
    """
    if isinstance(getattr(app.state, "di_settings", None), ContainerSettings):
        raise RuntimeError("install_container() has already been called for this FastAPI app.")

    settings = ContainerSettings(
        service_packages=_normalize_service_packages(service_packages),
        strict=strict,
        allow_private_modules=allow_private_modules,
        auto_add_scope_middleware=auto_add_scope_middleware,
        clear_on_shutdown=clear_on_shutdown,
    )

    if settings.auto_add_scope_middleware and not _has_middleware(
        app,
        ServiceScopeMiddleware,
    ):
        # Register early so user middlewares run inside the request scope.
        app.add_middleware(ServiceScopeMiddleware)

    previous_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def _combined_lifespan(inner_app: FastAPI) -> AsyncIterator[None]:
        services: ServiceContainer | None = None

        try:
            try:
                services = container if container is not None else ServiceContainer()
                setattr(inner_app.state, CONTAINER_STATE_ATTR, services)

                if settings.service_packages:
                    catalog = collect_service_definitions(
                        settings.service_packages,
                        allow_private_modules=settings.allow_private_modules,
                    )
                    register_services_from_catalog(services, catalog=catalog)

            except Exception:
                if settings.strict:
                    raise

                logger.exception(
                    "Service container startup failed; continuing without it because strict=False"
                )
                services = None
                setattr(inner_app.state, CONTAINER_STATE_ATTR, None)

            async with previous_lifespan(inner_app):
                yield

        finally:
            if services is not None and settings.clear_on_shutdown:
                services.clear()

    app.router.lifespan_context = _combined_lifespan
    app.state.di_settings = settings
    setattr(app.state, CONTAINER_STATE_ATTR, None)
    return settings
