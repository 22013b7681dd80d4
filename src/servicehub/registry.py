from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from types import ModuleType
from typing import TypeVar

from .container import (
    Factory,
    LifetimeLike,
    ServiceContainer,
    ServiceInfo,
    ServiceLifetime,
    normalize_lifetime,
)
from .errors import DuplicateAliasError, DuplicateServiceError

logger = logging.getLogger(__name__)

_SERVICE_DEFINITION_ATTR = "__servicehub_definition__"
_S = TypeVar("_S", bound=type)


@dataclass(frozen=True)
class ServiceDefinition:
    origin: str
    service_cls: type[object]
    name: str
    lifetime: ServiceLifetime
    aliases: tuple[str, ...]
    eager: bool
    factory: Factory

    @property
    def keys(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    def matches(self, info: ServiceInfo) -> bool:
        """True if ``info`` describes a registration made from this definition."""
        return (
            info.name == self.name
            and info.lifetime == self.lifetime
            and info.aliases == self.aliases
            and info.factory == self.factory
        )


@dataclass(frozen=True)
class RegisteredService:
    name: str
    origin: str
    lifetime: ServiceLifetime


def _validate_aliases(name: str, aliases: Sequence[str]) -> tuple[str, ...]:
    if isinstance(aliases, str):
        raise TypeError("Service() aliases must be a sequence of names, not a str.")
    normalized = tuple(aliases)
    seen = {name}
    for alias in normalized:
        if not isinstance(alias, str) or not alias:
            raise TypeError(f"Invalid alias {alias!r} for service {name!r}.")
        if alias in seen:
            raise DuplicateAliasError(
                f"Alias '{alias}' for service '{name}' repeats the name or another alias.",
                service_name=name,
                alias=alias,
            )
        seen.add(alias)
    return normalized


def _extract_factory(service_cls: type[object]) -> Factory:
    if inspect.isabstract(service_cls):
        raise TypeError(
            f"{service_cls!r} is abstract; define a concrete @classmethod create()."
        )
    raw_create = inspect.getattr_static(service_cls, "create", None)
    if raw_create is None:
        raise TypeError(f"{service_cls!r} is missing required classmethod create().")
    if not isinstance(raw_create, classmethod):
        raise TypeError(f"{service_cls!r}.create must be defined as @classmethod.")
    return getattr(service_cls, "create")


def Service(
    name: str,
    *,
    lifetime: LifetimeLike | str = ServiceLifetime.SINGLETON,
    aliases: Sequence[str] = (),
    eager: bool = False,
) -> Callable[[_S], _S]:
    """
    Declare a service class.

    The class gets a ``ServiceDefinition`` attached; nothing is registered
    until the definition is collected into a ``ServiceCatalog``.

    Supported forms:
    - @Service("my_service")
    - @Service("my_service", lifetime="scoped", aliases=["svc"])
    - @Service("my_service", eager=True)
    """
    if not isinstance(name, str) or not name:
        raise TypeError("Service() expects a non-empty service name.")
    alias_names = _validate_aliases(name, aliases)
    resolved_lifetime = normalize_lifetime(lifetime)
    if eager and resolved_lifetime != ServiceLifetime.SINGLETON:
        raise ValueError(
            f"Service '{name}' cannot be eager with {resolved_lifetime.name.lower()} lifetime."
        )

    def _decorator(service_cls: _S) -> _S:
        definition = ServiceDefinition(
            origin=f"{service_cls.__module__}.{service_cls.__qualname__}",
            service_cls=service_cls,
            name=name,
            lifetime=resolved_lifetime,
            aliases=alias_names,
            eager=eager,
            factory=_extract_factory(service_cls),
        )
        setattr(service_cls, _SERVICE_DEFINITION_ATTR, definition)
        return service_cls

    return _decorator


def service_definition(service_cls: type[object]) -> ServiceDefinition | None:
    """Return the definition declared on ``service_cls`` itself (not inherited)."""
    definition = service_cls.__dict__.get(_SERVICE_DEFINITION_ATTR)
    if isinstance(definition, ServiceDefinition):
        return definition
    return None


class ServiceCatalog:
    """
    Declared services keyed by name and alias.

    Applies the container's key rules at collection time, so two classes
    claiming the same name or alias fail before anything is registered.
    Adding the same class twice is a no-op.
    """

    def __init__(self) -> None:
        # name or alias -> definition
        self._by_key: dict[str, ServiceDefinition] = {}
        self._definitions: list[ServiceDefinition] = []

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def add(self, definition: ServiceDefinition) -> None:
        existing = self._by_key.get(definition.name)
        if existing is not None and existing.origin == definition.origin:
            return

        for key in definition.keys:
            owner = self._by_key.get(key)
            if owner is None:
                continue
            if key == definition.name:
                raise DuplicateServiceError(
                    f"Service '{key}' is declared by both {owner.origin} "
                    f"and {definition.origin}.",
                    service_name=key,
                )
            raise DuplicateAliasError(
                f"Key '{key}' of service '{definition.name}' ({definition.origin}) "
                f"is already used by service '{owner.name}' ({owner.origin}).",
                service_name=definition.name,
                alias=key,
            )

        for key in definition.keys:
            self._by_key[key] = definition
        self._definitions.append(definition)

    def add_service(self, service_cls: type[object]) -> None:
        definition = service_definition(service_cls)
        if definition is None:
            raise TypeError(f"{service_cls!r} is not decorated with @Service.")
        self.add(definition)

    def definitions(self) -> list[ServiceDefinition]:
        return list(self._definitions)


def _iter_service_modules(
    package_name: str,
    *,
    allow_private_modules: bool,
) -> Iterator[ModuleType]:
    package = importlib.import_module(package_name)
    yield package

    package_path = getattr(package, "__path__", None)
    if package_path is None:
        return
    prefix = f"{package.__name__}."
    for module_info in pkgutil.walk_packages(package_path, prefix=prefix):
        relative_parts = module_info.name[len(prefix):].split(".")
        if not allow_private_modules and any(p.startswith("_") for p in relative_parts):
            continue
        yield importlib.import_module(module_info.name)


def _declared_services(module: ModuleType) -> Iterator[type[object]]:
    for _name, cls in inspect.getmembers(module, inspect.isclass):
        if cls.__module__ == module.__name__ and service_definition(cls) is not None:
            yield cls


def collect_service_definitions(
    package_names: str | Sequence[str],
    *,
    allow_private_modules: bool = False,
    catalog: ServiceCatalog | None = None,
) -> ServiceCatalog:
    """
    Import ``package_names`` with all submodules and collect every module-level
    ``@Service`` class into a catalog.

    Modules named with a leading underscore are skipped unless
    ``allow_private_modules`` is set.
    """
    packages = (package_names,) if isinstance(package_names, str) else tuple(package_names)
    if not packages:
        raise ValueError("At least one service package must be provided.")

    catalog = catalog if catalog is not None else ServiceCatalog()
    for package_name in packages:
        for module in _iter_service_modules(
            package_name,
            allow_private_modules=allow_private_modules,
        ):
            for service_cls in _declared_services(module):
                catalog.add_service(service_cls)
    return catalog


def register_services_from_catalog(
    container: ServiceContainer,
    *,
    catalog: ServiceCatalog,
) -> list[RegisteredService]:
    """
    Register every catalog definition into ``container``, in declaration order.

    A definition already registered from the same class (same lifetime,
    aliases and factory) is skipped, so a container kept across app restarts
    can be filled again. Eager singletons are resolved once everything is
    registered, so a failing factory aborts startup.
    """
    definitions = catalog.definitions()
    registered_services: list[RegisteredService] = []
    for definition in definitions:
        info = container.get_service_info(definition.name)
        if info is not None and definition.matches(info):
            logger.debug("Service %s already registered from %s", definition.name, definition.origin)
            continue
        container.register(
            definition.name,
            definition.lifetime,
            definition.factory,
            definition.aliases,
        )
        registered_services.append(
            RegisteredService(
                name=definition.name,
                origin=definition.origin,
                lifetime=definition.lifetime,
            )
        )

    for definition in definitions:
        if definition.eager:
            container.get(definition.name)

    logger.debug("[LIFESPAN] Registered services count=%s", len(registered_services))
    return registered_services
