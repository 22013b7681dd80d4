from .base import BaseService
from .container import (
    Factory,
    ServiceContainer,
    ServiceInfo,
    ServiceLifetime,
    ServiceScope,
    create_service_container,
    normalize_lifetime,
)
from .errors import (
    DuplicateAliasError,
    DuplicateServiceError,
    NoActiveScopeError,
    ServiceContainerError,
    ServiceFactoryError,
    ServiceNotRegisteredError,
    UnsupportedLifetimeError,
)
from .injection import (
    SCOPE_STATE_KEY,
    Inject,
    ServiceScopeMiddleware,
    current_scope,
    resolve_service_container,
)
from .install import ContainerSettings, install_container
from .registry import (
    RegisteredService,
    Service,
    ServiceCatalog,
    ServiceDefinition,
    collect_service_definitions,
    register_services_from_catalog,
    service_definition,
)

__all__ = [
    "BaseService",
    "ContainerSettings",
    "DuplicateAliasError",
    "DuplicateServiceError",
    "Factory",
    "Inject",
    "NoActiveScopeError",
    "RegisteredService",
    "SCOPE_STATE_KEY",
    "Service",
    "ServiceCatalog",
    "ServiceContainer",
    "ServiceContainerError",
    "ServiceDefinition",
    "ServiceFactoryError",
    "ServiceInfo",
    "ServiceLifetime",
    "ServiceNotRegisteredError",
    "ServiceScope",
    "ServiceScopeMiddleware",
    "UnsupportedLifetimeError",
    "collect_service_definitions",
    "create_service_container",
    "current_scope",
    "install_container",
    "normalize_lifetime",
    "register_services_from_catalog",
    "resolve_service_container",
    "service_definition",
]
