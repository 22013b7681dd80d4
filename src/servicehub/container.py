from __future__ import annotations

import weakref
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

from loguru import logger

from .errors import (
    DuplicateAliasError,
    DuplicateServiceError,
    NoActiveScopeError,
    ServiceContainerError,
    ServiceFactoryError,
    ServiceNotRegisteredError,
    UnsupportedLifetimeError,
)

# Factory may take any arguments; only FACTORY lifetime receives resolve-time ones.
Factory = Callable[..., object]


class ServiceLifetime(IntEnum):
    """
    Lifetime of a registered service.

    SINGLETON:
        A single instance is created on first access and reused afterwards.
    TRANSIENT:
        A new instance is created for each resolution.
    SCOPED:
        One instance per ``ServiceScope``; resolving requires an active scope.
    FACTORY:
        A new instance per resolution, built from the arguments passed to ``get``.
    """

    SINGLETON = 0
    TRANSIENT = 1
    SCOPED = 2
    FACTORY = 3


LifetimeLike = ServiceLifetime | int | Literal[
    "singleton",
    "transient",
    "scoped",
    "factory",
]


def normalize_lifetime(lifetime: LifetimeLike | str) -> ServiceLifetime:
    if isinstance(lifetime, ServiceLifetime):
        return lifetime
    if isinstance(lifetime, bool):
        raise TypeError(f"Invalid lifetime type: {type(lifetime)!r}.")
    if isinstance(lifetime, int):
        try:
            return ServiceLifetime(lifetime)
        except ValueError as exc:
            msg = (
                f"Unsupported lifetime value: {lifetime!r}. "
                "Use a ServiceLifetime member or 0-3."
            )
            logger.error(msg)
            raise UnsupportedLifetimeError(msg) from exc
    if isinstance(lifetime, str):
        normalized = lifetime.strip().upper()
        try:
            return ServiceLifetime[normalized]
        except KeyError as exc:
            msg = (
                f"Unsupported lifetime string: {lifetime!r}. "
                "Use 'singleton', 'transient', 'scoped' or 'factory'."
            )
            logger.error(msg)
            raise UnsupportedLifetimeError(msg) from exc
    raise TypeError(
        "Invalid lifetime type: "
        f"{type(lifetime)!r}. Use ServiceLifetime, int or a lifetime name."
    )


class _NotCreated:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<not created>"


# Initial singleton slot content; compared by identity, never equal to a factory result.
_NOT_CREATED = _NotCreated()


@dataclass(frozen=True)
class ServiceInfo:
    """Snapshot of one registration."""

    name: str
    lifetime: ServiceLifetime
    aliases: tuple[str, ...]
    has_instance: bool
    factory: Factory | None = field(default=None, compare=False, repr=False)


class ServiceScope:
    """
    Resolution context for SCOPED services.

    A scope carries no state of its own: the owning container keeps one
    instance cache per scope. Use ``dispose()`` (or a ``with`` block) to drop
    that cache.
    """

    __slots__ = ("_container", "__weakref__")

    def __init__(self, container: ServiceContainer) -> None:
        self._container = container

    def get(self, name: str, /, *args: object, **kwargs: object) -> object:
        """Resolve ``name`` with this scope as the current one."""
        container = self._container
        container._enter_scope(self)
        try:
            return container.get(name, *args, **kwargs)
        finally:
            container._exit_scope(self)

    def has(self, name: str) -> bool:
        return self._container.has(name)

    def dispose(self) -> None:
        self._container._dispose_scope(self)

    def __enter__(self) -> ServiceScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class ServiceContainer:
    """
    Name-keyed dependency container with singleton, transient, scoped and
    factory lifetimes.

    Every service is registered under a unique name plus optional aliases;
    aliases point at the same registration record, so a singleton resolved
    through an alias is the same object as the one resolved by name.

    Concurrency model
    -----------------
    * All operations are synchronous and run to completion.
    * The "current scope" is the top of a container-wide stack that is only
      pushed and popped inside ``ServiceScope.get``.

    IMPORTANT:
    ----------
    * The container is **not thread-safe**. Resolving through one container
      from several threads at once may corrupt the scope stack and the
      per-scope caches.
    * There is no circular-dependency detection: a factory that resolves its
      own name recurses until ``RecursionError``, which surfaces as a
      ``ServiceFactoryError``.
    """

    class Registration:
        """
        Internal representation of a registered service.

        ``instance`` is only used by SINGLETON registrations.
        """

        __slots__ = (
            "name",
            "lifetime",
            "factory",
            "aliases",
            "instance",
        )

        def __init__(
                self,
                name: str,
                lifetime: ServiceLifetime,
                factory: Factory,
                aliases: tuple[str, ...],
        ) -> None:
            self.name: str = name
            self.lifetime: ServiceLifetime = lifetime
            self.factory: Factory = factory
            self.aliases: tuple[str, ...] = aliases
            self.instance: object = _NOT_CREATED

        @property
        def has_instance(self) -> bool:
            return self.instance is not _NOT_CREATED

        def info(self) -> ServiceInfo:
            return ServiceInfo(
                name=self.name,
                lifetime=self.lifetime,
                aliases=self.aliases,
                has_instance=(
                    self.lifetime == ServiceLifetime.SINGLETON and self.has_instance
                ),
                factory=self.factory,
            )

    def __init__(self) -> None:
        # name or alias -> registration
        self._services: dict[str, ServiceContainer.Registration] = {}
        # scope -> primary name -> instance
        self._scoped_instances: weakref.WeakKeyDictionary[
            ServiceScope, dict[str, object]
        ] = weakref.WeakKeyDictionary()
        self._scope_stack: list[ServiceScope] = []

    # --------------------------------------------------------------------- #
    # Internal helpers                                                      #
    # --------------------------------------------------------------------- #

    @staticmethod
    def _validate_registration(
            name: object,
            factory: object,
            aliases: Iterable[str] | None,
    ) -> tuple[str, ...]:
        if not isinstance(name, str):
            raise TypeError(f"Service name must be a str, got {type(name)!r}.")
        if not name:
            raise ValueError("Service name must not be empty.")
        if not callable(factory):
            msg = (
                f"Invalid factory for service {name!r}: "
                f"expected a callable, got {type(factory)!r}."
            )
            logger.error(msg)
            raise TypeError(msg)
        if aliases is None:
            return ()
        if isinstance(aliases, str):
            raise TypeError(
                f"Aliases for service {name!r} must be a sequence of str, not a str."
            )
        normalized = tuple(aliases)
        for alias in normalized:
            if not isinstance(alias, str) or not alias:
                raise TypeError(
                    f"Invalid alias {alias!r} for service {name!r}: expected a non-empty str."
                )
        return normalized

    def _get_registration(self, name: str) -> Registration:
        registration = self._services.get(name)
        if registration is None:
            msg = f"Service '{name}' is not registered"
            logger.debug(msg)
            raise ServiceNotRegisteredError(msg, service_name=name)
        return registration

    @staticmethod
    def _invoke_factory(
            registration: Registration,
            *args: object,
            **kwargs: object,
    ) -> object:
        """Run a factory, wrapping any failure with the service's primary name."""
        try:
            return registration.factory(*args, **kwargs)
        except Exception as exc:
            msg = f"Failed to create service '{registration.name}': {exc}"
            # Nested resolution failures were already logged one level down.
            if not isinstance(exc, ServiceContainerError):
                logger.error(msg)
            raise ServiceFactoryError(msg, service_name=registration.name) from exc

    @staticmethod
    def _warn_ignored_arguments(
            registration: Registration,
            args: tuple[object, ...],
            kwargs: dict[str, object],
    ) -> None:
        if args or kwargs:
            logger.warning(
                f"Arguments given for {registration.lifetime.name.lower()} "
                f"service '{registration.name}' are ignored."
            )

    def _get_singleton(self, registration: Registration) -> object:
        if registration.instance is not _NOT_CREATED:
            return registration.instance

        instance = self._invoke_factory(registration)
        registration.instance = instance
        logger.debug(f"Singleton service created: {registration.name}")
        return instance

    def _get_transient(self, registration: Registration) -> object:
        return self._invoke_factory(registration)

    def _get_scoped(self, registration: Registration) -> object:
        scope = self._current_scope()
        if scope is None:
            msg = (
                f"Scoped service '{registration.name}' must be resolved inside a scope; "
                "call create_scope() first."
            )
            logger.debug(msg)
            raise NoActiveScopeError(msg, service_name=registration.name)

        instances = self._scoped_instances.get(scope)
        if instances is None:
            instances = {}
            self._scoped_instances[scope] = instances

        if registration.name in instances:
            return instances[registration.name]

        instance = self._invoke_factory(registration)
        instances[registration.name] = instance
        return instance

    def _get_factory(
            self,
            registration: Registration,
            *args: object,
            **kwargs: object,
    ) -> object:
        return self._invoke_factory(registration, *args, **kwargs)

    def _current_scope(self) -> ServiceScope | None:
        return self._scope_stack[-1] if self._scope_stack else None

    def _enter_scope(self, scope: ServiceScope) -> None:
        self._scope_stack.append(scope)

    def _exit_scope(self, scope: ServiceScope) -> None:
        stack = self._scope_stack
        if stack and stack[-1] is scope:
            stack.pop()
            return
        # clear() may have emptied the stack while this scope was active.
        for index in range(len(stack) - 1, -1, -1):
            if stack[index] is scope:
                del stack[index]
                return

    def _dispose_scope(self, scope: ServiceScope) -> None:
        if self._scoped_instances.pop(scope, None) is not None:
            logger.debug("Service scope disposed.")

    # --------------------------------------------------------------------- #
    # Registration                                                          #
    # --------------------------------------------------------------------- #

    def register(
            self,
            name: str,
            lifetime: LifetimeLike | str,
            factory: Factory,
            aliases: Iterable[str] | None = None,
    ) -> None:
        """
        Register a service in the container.

        Parameters
        ----------
        name:
            Unique service name.
        lifetime:
            Service lifetime; a ``ServiceLifetime``, its int value or its name.
        factory:
            Callable that creates the service instance. Only FACTORY services
            receive the arguments passed at resolution time.
        aliases:
            Extra names resolving to the same registration. Either all of them
            are installed or none is.
        """
        alias_names = self._validate_registration(name, factory, aliases)
        resolved_lifetime = normalize_lifetime(lifetime)

        if name in self._services:
            msg = f"Service '{name}' is already registered; use remove() or replace() first."
            logger.error(msg)
            raise DuplicateServiceError(msg, service_name=name)

        seen: set[str] = {name}
        for alias in alias_names:
            if alias in self._services or alias in seen:
                msg = f"Alias '{alias}' for service '{name}' is already in use."
                logger.error(msg)
                raise DuplicateAliasError(msg, service_name=name, alias=alias)
            seen.add(alias)

        registration = ServiceContainer.Registration(
            name,
            resolved_lifetime,
            factory,
            alias_names,
        )
        self._services[name] = registration
        for alias in alias_names:
            self._services[alias] = registration

        logger.debug(
            f"Service registered: name={name}, lifetime={resolved_lifetime.name}, "
            f"aliases={list(alias_names)}"
        )

    def register_singleton(
            self,
            name: str,
            factory: Factory,
            aliases: Iterable[str] | None = None,
    ) -> None:
        """One instance for the whole container, created on first ``get``."""
        self.register(name, ServiceLifetime.SINGLETON, factory, aliases)

    def register_transient(
            self,
            name: str,
            factory: Factory,
            aliases: Iterable[str] | None = None,
    ) -> None:
        """A new instance on every ``get``."""
        self.register(name, ServiceLifetime.TRANSIENT, factory, aliases)

    def register_scoped(
            self,
            name: str,
            factory: Factory,
            aliases: Iterable[str] | None = None,
    ) -> None:
        """One instance per scope; see ``create_scope()``."""
        self.register(name, ServiceLifetime.SCOPED, factory, aliases)

    def register_factory(
            self,
            name: str,
            factory: Factory,
            aliases: Iterable[str] | None = None,
    ) -> None:
        """A new instance on every ``get``, built from the arguments given to ``get``."""
        self.register(name, ServiceLifetime.FACTORY, factory, aliases)

    # --------------------------------------------------------------------- #
    # Resolution                                                            #
    # --------------------------------------------------------------------- #

    def get(self, name: str, /, *args: object, **kwargs: object) -> object:
        """
        Resolve a service instance by name or alias.

        Raises ``ServiceNotRegisteredError``, ``NoActiveScopeError`` or
        ``ServiceFactoryError``.
        """
        registration = self._get_registration(name)
        lifetime = registration.lifetime

        if lifetime == ServiceLifetime.SINGLETON:
            self._warn_ignored_arguments(registration, args, kwargs)
            return self._get_singleton(registration)
        if lifetime == ServiceLifetime.TRANSIENT:
            self._warn_ignored_arguments(registration, args, kwargs)
            return self._get_transient(registration)
        if lifetime == ServiceLifetime.SCOPED:
            self._warn_ignored_arguments(registration, args, kwargs)
            return self._get_scoped(registration)
        if lifetime == ServiceLifetime.FACTORY:
            return self._get_factory(registration, *args, **kwargs)

        msg = f"Unsupported lifetime for service '{registration.name}': {lifetime!r}"
        logger.error(msg)
        raise UnsupportedLifetimeError(msg, service_name=registration.name)

    def try_get(self, name: str, /, *args: object, **kwargs: object) -> object | None:
        """
        Like ``get`` but return ``None`` on any container error.

        Unknown names are swallowed too, so a misspelled name looks the same
        as a factory failure.
        """
        try:
            return self.get(name, *args, **kwargs)
        except ServiceContainerError as exc:
            logger.debug(f"try_get('{name}') returned None: {exc}")
            return None

    def get_or_default(
            self,
            name: str,
            default: object,
            /,
            *args: object,
            **kwargs: object,
    ) -> object:
        """
        Like ``try_get`` but return ``default`` instead of ``None``.

        A factory that legitimately returns ``None`` also yields ``default``.
        """
        instance = self.try_get(name, *args, **kwargs)
        return default if instance is None else instance

    # --------------------------------------------------------------------- #
    # Management                                                            #
    # --------------------------------------------------------------------- #

    def has(self, name: str) -> bool:
        return name in self._services

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def remove(self, name: str) -> bool:
        """
        Remove a service by name or alias, together with all of its aliases.

        Returns ``False`` if nothing was registered under ``name``.
        """
        registration = self._services.get(name)
        if registration is None:
            return False

        self._services.pop(registration.name, None)
        for alias in registration.aliases:
            self._services.pop(alias, None)

        if registration.lifetime == ServiceLifetime.SINGLETON:
            registration.instance = _NOT_CREATED

        for instances in self._scoped_instances.values():
            instances.pop(registration.name, None)

        logger.debug(f"Service removed: {registration.name}")
        return True

    def replace(
            self,
            name: str,
            lifetime: LifetimeLike | str,
            factory: Factory,
            aliases: Iterable[str] | None = None,
    ) -> None:
        """
        Remove ``name`` (if registered) and register it again.

        Aliases of the old registration are not carried over.
        """
        self.remove(name)
        self.register(name, lifetime, factory, aliases)

    def clear(self) -> None:
        """Drop every registration, every scope cache and the scope stack."""
        self._services.clear()
        self._scoped_instances.clear()
        self._scope_stack.clear()
        logger.debug("Service container cleared.")

    def create_scope(self) -> ServiceScope:
        scope = ServiceScope(self)
        logger.debug("Service scope created.")
        return scope

    # --------------------------------------------------------------------- #
    # Discovery                                                             #
    # --------------------------------------------------------------------- #

    def _unique_registrations(self) -> list[Registration]:
        seen: set[int] = set()
        registrations: list[ServiceContainer.Registration] = []
        for registration in self._services.values():
            if id(registration) in seen:
                continue
            seen.add(id(registration))
            registrations.append(registration)
        return registrations

    def get_registered_services(self) -> list[str]:
        """All registered names and aliases."""
        return list(self._services)

    def get_service_info(self, name: str) -> ServiceInfo | None:
        registration = self._services.get(name)
        if registration is None:
            return None
        return registration.info()

    def get_all_service_info(self) -> list[ServiceInfo]:
        """One entry per registration, aliases not repeated."""
        return [registration.info() for registration in self._unique_registrations()]

    def get_services_by_lifetime(self, lifetime: LifetimeLike | str) -> list[str]:
        resolved_lifetime = normalize_lifetime(lifetime)
        return [
            registration.name
            for registration in self._unique_registrations()
            if registration.lifetime == resolved_lifetime
        ]


def create_service_container() -> ServiceContainer:
    return ServiceContainer()
