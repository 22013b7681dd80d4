from __future__ import annotations


class ServiceContainerError(RuntimeError):
    """
    Base class for every error raised by ``ServiceContainer``.

    Derives from ``RuntimeError`` so callers catching the generic runtime
    failure keep working.
    """

    def __init__(self, message: str, *, service_name: str | None = None) -> None:
        super().__init__(message)
        self.service_name = service_name


class DuplicateServiceError(ServiceContainerError):
    """A service name is already registered."""


class DuplicateAliasError(ServiceContainerError):
    """An alias is already registered (as a name or as another alias)."""

    def __init__(
        self,
        message: str,
        *,
        service_name: str | None = None,
        alias: str | None = None,
    ) -> None:
        super().__init__(message, service_name=service_name)
        self.alias = alias


class ServiceNotRegisteredError(ServiceContainerError):
    """Resolution was requested for an unknown name."""


class NoActiveScopeError(ServiceContainerError):
    """A scoped service was resolved outside of any ``ServiceScope``."""


class UnsupportedLifetimeError(ServiceContainerError, ValueError):
    """The lifetime value is not one of ``ServiceLifetime``."""


class ServiceFactoryError(ServiceContainerError):
    """
    A service factory raised while building an instance.

    The original exception is available as ``__cause__``.
    """


__all__ = [
    "DuplicateAliasError",
    "DuplicateServiceError",
    "NoActiveScopeError",
    "ServiceContainerError",
    "ServiceFactoryError",
    "ServiceNotRegisteredError",
    "UnsupportedLifetimeError",
]
