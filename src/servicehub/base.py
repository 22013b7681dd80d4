from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .registry import Service


class BaseService(ABC):
    """
    Base class for services declared with ``@Service``.

    ``create`` is registered as the service factory. FACTORY services receive
    the arguments passed to ``ServiceContainer.get``; other lifetimes are
    created without arguments.
    """

    @classmethod
    @abstractmethod
    def create(cls, *args: Any, **kwargs: Any) -> object:
        """Factory hook used by the service registry."""
        raise NotImplementedError


__all__ = ["BaseService", "Service"]
