from __future__ import annotations

import itertools

from servicehub import BaseService, Service

_request_numbers = itertools.count(1)


@Service("ping_service", eager=True)
class PingService(BaseService):
    @classmethod
    def create(cls) -> "PingService":
        return cls()


@Service("request_context", lifetime="scoped", aliases=["ctx"])
class RequestContextService(BaseService):
    def __init__(self, seq: int) -> None:
        self.seq = seq

    @classmethod
    def create(cls) -> "RequestContextService":
        return cls(next(_request_numbers))


@Service("greeter", lifetime="factory")
class GreeterService(BaseService):
    def __init__(self, greeting: str) -> None:
        self.greeting = greeting

    @classmethod
    def create(cls, name: str, *, punctuation: str = "") -> "GreeterService":
        return cls(f"hello {name}{punctuation}")
