from __future__ import annotations

import pytest
from loguru import logger

from servicehub import (
    DuplicateAliasError,
    DuplicateServiceError,
    NoActiveScopeError,
    ServiceContainer,
    ServiceContainerError,
    ServiceFactoryError,
    ServiceInfo,
    ServiceLifetime,
    ServiceNotRegisteredError,
    UnsupportedLifetimeError,
    create_service_container,
    normalize_lifetime,
)


def test_create_service_container_returns_empty_container():
    container = create_service_container()
    assert isinstance(container, ServiceContainer)
    assert container.get_registered_services() == []


def test_singleton_lifecycle():
    """Test that singleton services are created only once"""
    container = ServiceContainer()

    call_count = 0

    def factory():
        nonlocal call_count
        call_count += 1
        return {"instance": call_count}

    container.register_singleton("test", factory)

    instance1 = container.get("test")
    instance2 = container.get("test")

    assert instance1 is instance2
    assert call_count == 1
    assert instance1 == {"instance": 1}


@pytest.mark.parametrize("value", [None, 0, "", False, []])
def test_singleton_caches_falsy_results(value):
    """A singleton returning None/0/'' must not be rebuilt"""
    container = ServiceContainer()
    calls = []

    def factory():
        calls.append(1)
        return value

    container.register_singleton("falsy", factory)

    assert container.get("falsy") is value
    assert container.get("falsy") is value
    assert len(calls) == 1


def test_singleton_is_lazy():
    container = ServiceContainer()
    calls = []
    container.register_singleton("lazy", lambda: calls.append(1))
    assert calls == []
    info = container.get_service_info("lazy")
    assert info is not None and info.has_instance is False


def test_transient_lifecycle():
    """Test that transient services create new instances each time"""
    container = ServiceContainer()

    call_count = 0

    def factory():
        nonlocal call_count
        call_count += 1
        return {"instance": call_count}

    container.register_transient("test", factory)

    instance1 = container.get("test")
    instance2 = container.get("test")

    assert instance1 is not instance2
    assert call_count == 2


def test_factory_forwards_arguments_and_never_caches():
    container = ServiceContainer()
    container.register_factory("greeting", lambda name, punct="!": f"hello {name}{punct}")

    assert container.get("greeting", "alice") == "hello alice!"
    assert container.get("greeting", "bob", punct="?") == "hello bob?"
    assert container.get("greeting", "alice") == "hello alice!"


def test_factory_returns_fresh_objects():
    container = ServiceContainer()
    container.register_factory("pair", lambda a, b: [a, b])

    first = container.get("pair", 1, 2)
    second = container.get("pair", 1, 2)
    assert first == second == [1, 2]
    assert first is not second


def test_arguments_ignored_for_non_factory_lifetimes():
    container = ServiceContainer()
    container.register_transient("plain", lambda: "ok")
    assert container.get("plain", 1, 2, key="value") == "ok"


def test_scoped_outside_scope_raises():
    container = ServiceContainer()
    container.register_scoped("request", dict)

    with pytest.raises(NoActiveScopeError, match="request"):
        container.get("request")


def test_get_unregistered_service_raises():
    container = ServiceContainer()

    with pytest.raises(ServiceNotRegisteredError, match="missing") as exc_info:
        container.get("missing")
    assert exc_info.value.service_name == "missing"


def test_duplicate_registration_is_rejected_and_keeps_original():
    container = ServiceContainer()
    container.register_singleton("db", lambda: "first")

    with pytest.raises(DuplicateServiceError, match="db"):
        container.register_transient("db", lambda: "second")

    assert container.get("db") == "first"
    info = container.get_service_info("db")
    assert info is not None and info.lifetime == ServiceLifetime.SINGLETON


def test_duplicate_alias_rolls_back_whole_registration():
    container = ServiceContainer()
    container.register_singleton("cache", dict, aliases=["store"])

    with pytest.raises(DuplicateAliasError) as exc_info:
        container.register_singleton("db", dict, aliases=["database", "store"])

    assert exc_info.value.alias == "store"
    assert not container.has("db")
    assert not container.has("database")
    assert container.get_service_info("store").name == "cache"


def test_alias_repeating_primary_name_is_rejected():
    container = ServiceContainer()

    with pytest.raises(DuplicateAliasError):
        container.register_singleton("db", dict, aliases=["db"])
    with pytest.raises(DuplicateAliasError):
        container.register_singleton("db", dict, aliases=["a", "a"])

    assert container.get_registered_services() == []


def test_aliases_share_one_registration():
    container = ServiceContainer()
    container.register_singleton("logger", object, aliases=["log", "logging"])

    assert container.has("logger")
    assert container.has("log")
    assert container.has("logging")
    assert "log" in container
    assert container.get("log") is container.get("logger")
    assert container.get("logging") is container.get("logger")
    assert set(container.get_registered_services()) == {"logger", "log", "logging"}


def test_remove_via_alias_removes_all_keys():
    container = ServiceContainer()
    container.register_singleton("logger", object, aliases=["log", "logging"])

    assert container.remove("log") is True

    assert not container.has("logger")
    assert not container.has("log")
    assert not container.has("logging")
    assert container.get_registered_services() == []


def test_remove_unknown_name_returns_false():
    container = ServiceContainer()
    container.register_transient("known", dict)

    assert container.remove("unknown") is False
    assert container.get_registered_services() == ["known"]


def test_remove_resets_singleton_instance():
    container = ServiceContainer()
    container.register_singleton("svc", object)
    first = container.get("svc")

    assert container.remove("svc") is True
    container.register_singleton("svc", object)

    assert container.get("svc") is not first


def test_replace_singleton_with_transient():
    container = ServiceContainer()
    container.register_singleton("svc", object, aliases=["alias"])
    container.get("svc")

    container.replace("svc", "transient", object)

    assert container.get("svc") is not container.get("svc")
    assert not container.has("alias")
    info = container.get_service_info("svc")
    assert info == ServiceInfo(
        name="svc",
        lifetime=ServiceLifetime.TRANSIENT,
        aliases=(),
        has_instance=False,
    )


def test_replace_unregistered_name_registers_it():
    container = ServiceContainer()
    container.replace("new", ServiceLifetime.SINGLETON, lambda: 42, aliases=["answer"])
    assert container.get("answer") == 42


def test_clear_removes_everything():
    container = ServiceContainer()
    container.register_singleton("a", dict)
    container.register_transient("b", dict, aliases=["bee"])

    container.clear()

    assert not container.has("a")
    assert not container.has("b")
    assert not container.has("bee")
    assert container.get_registered_services() == []
    assert container.get_all_service_info() == []


def test_factory_error_is_wrapped_with_service_name():
    container = ServiceContainer()
    original = ValueError("connection refused")

    def broken():
        raise original

    container.register_singleton("database", broken)

    with pytest.raises(ServiceFactoryError) as exc_info:
        container.get("database")

    message = str(exc_info.value)
    assert "database" in message
    assert "connection refused" in message
    assert exc_info.value.service_name == "database"
    assert exc_info.value.__cause__ is original


def test_factory_error_uses_primary_name_when_resolved_by_alias():
    container = ServiceContainer()
    container.register_transient("database", lambda: 1 / 0, aliases=["db"])

    with pytest.raises(ServiceFactoryError, match="database") as exc_info:
        container.get("db")
    assert isinstance(exc_info.value.__cause__, ZeroDivisionError)


def test_failed_singleton_is_retried_on_next_get():
    container = ServiceContainer()
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("not yet")
        return "ready"

    container.register_singleton("flaky", flaky)

    with pytest.raises(ServiceFactoryError):
        container.get("flaky")
    assert container.get("flaky") == "ready"
    assert container.get("flaky") == "ready"
    assert len(attempts) == 2


def test_errors_share_runtime_error_base():
    assert issubclass(ServiceFactoryError, ServiceContainerError)
    assert issubclass(ServiceContainerError, RuntimeError)
    assert issubclass(UnsupportedLifetimeError, ValueError)


def test_try_get_returns_none_on_failures():
    container = ServiceContainer()
    container.register_transient("broken", lambda: 1 / 0)
    container.register_scoped("scoped", dict)
    container.register_transient("ok", lambda: "value")

    assert container.try_get("missing") is None
    assert container.try_get("broken") is None
    assert container.try_get("scoped") is None
    assert container.try_get("ok") == "value"


def test_try_get_forwards_factory_arguments():
    container = ServiceContainer()
    container.register_factory("add", lambda a, b: a + b)
    assert container.try_get("add", 2, 3) == 5


def test_get_or_default():
    container = ServiceContainer()
    container.register_transient("broken", lambda: 1 / 0)
    container.register_transient("none", lambda: None)
    container.register_transient("zero", lambda: 0)
    container.register_factory("double", lambda x: x * 2)

    assert container.get_or_default("missing", "fallback") == "fallback"
    assert container.get_or_default("broken", "fallback") == "fallback"
    assert container.get_or_default("none", "fallback") == "fallback"
    assert container.get_or_default("zero", "fallback") == 0
    assert container.get_or_default("double", None, 21) == 42


def test_name_and_default_keywords_reach_the_factory():
    container = ServiceContainer()
    container.register_factory(
        "label",
        lambda name, default="?": f"{name}={default}",
    )

    assert container.get("label", name="host") == "host=?"
    assert container.get("label", name="host", default="localhost") == "host=localhost"
    assert container.try_get("label", name="port", default=80) == "port=80"
    assert container.get_or_default("label", None, name="user", default="root") == "user=root"
    assert container.get_or_default("missing", "fallback", name="x") == "fallback"


def test_lookup_misses_are_not_logged_as_errors():
    container = ServiceContainer()
    container.register_scoped("scoped", dict)
    records = []
    sink_id = logger.add(records.append, level="ERROR")
    try:
        assert container.try_get("missing") is None
        assert container.try_get("scoped") is None
        assert container.get_or_default("missing", 0) == 0
    finally:
        logger.remove(sink_id)

    assert records == []


def test_nested_factory_failure_is_logged_once():
    container = ServiceContainer()
    container.register_transient("inner", lambda: 1 / 0)
    container.register_transient("outer", lambda: container.get("inner"))
    records = []
    sink_id = logger.add(records.append, level="ERROR")
    try:
        assert container.try_get("outer") is None
    finally:
        logger.remove(sink_id)

    assert len(records) == 1
    assert "inner" in records[0]


def test_nested_resolution_inside_factory():
    container = ServiceContainer()
    container.register_singleton("config", lambda: {"dsn": "sqlite://"})
    container.register_transient(
        "repository",
        lambda: {"config": container.get("config")},
    )

    repo = container.get("repository")
    assert repo["config"] is container.get("config")


def test_nested_resolution_failure_is_wrapped():
    container = ServiceContainer()
    container.register_transient("outer", lambda: container.get("inner"))

    with pytest.raises(ServiceFactoryError, match="outer") as exc_info:
        container.get("outer")
    assert isinstance(exc_info.value.__cause__, ServiceNotRegisteredError)


def test_get_service_info_for_singleton():
    container = ServiceContainer()
    container.register_singleton("svc", object, aliases=["s1", "s2"])

    info = container.get_service_info("s1")
    assert info == ServiceInfo(
        name="svc",
        lifetime=ServiceLifetime.SINGLETON,
        aliases=("s1", "s2"),
        has_instance=False,
    )

    container.get("svc")
    info = container.get_service_info("svc")
    assert info is not None and info.has_instance is True


def test_get_service_info_has_instance_false_for_other_lifetimes():
    container = ServiceContainer()
    container.register_transient("t", object)
    container.get("t")

    info = container.get_service_info("t")
    assert info is not None and info.has_instance is False
    assert container.get_service_info("missing") is None


def test_get_all_service_info_deduplicates_aliases():
    container = ServiceContainer()
    container.register_singleton("svc", object, aliases=["a1", "a2"])

    infos = container.get_all_service_info()
    assert len(infos) == 1
    assert infos[0].name == "svc"


def test_get_services_by_lifetime():
    container = ServiceContainer()
    container.register_singleton("s1", object, aliases=["s1_alias"])
    container.register_singleton("s2", object)
    container.register_transient("t1", object)
    container.register_scoped("sc1", object)
    container.register_factory("f1", object)

    assert container.get_services_by_lifetime(ServiceLifetime.SINGLETON) == ["s1", "s2"]
    assert container.get_services_by_lifetime("transient") == ["t1"]
    assert container.get_services_by_lifetime("Scoped") == ["sc1"]
    assert container.get_services_by_lifetime(3) == ["f1"]


def test_normalize_lifetime():
    assert normalize_lifetime(ServiceLifetime.SCOPED) is ServiceLifetime.SCOPED
    assert normalize_lifetime(0) is ServiceLifetime.SINGLETON
    assert normalize_lifetime(" Factory ") is ServiceLifetime.FACTORY

    with pytest.raises(UnsupportedLifetimeError):
        normalize_lifetime("request")
    with pytest.raises(UnsupportedLifetimeError):
        normalize_lifetime(9)
    with pytest.raises(TypeError):
        normalize_lifetime(1.5)  # type: ignore[arg-type]


def test_register_rejects_unknown_lifetime():
    container = ServiceContainer()

    with pytest.raises(UnsupportedLifetimeError):
        container.register("svc", "per-request", dict)
    assert not container.has("svc")


def test_register_validates_arguments():
    container = ServiceContainer()

    with pytest.raises(TypeError, match="expected a callable"):
        container.register_singleton("svc", "not callable")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        container.register_singleton("", dict)
    with pytest.raises(TypeError):
        container.register_singleton("svc", dict, aliases="alias")
    assert container.get_registered_services() == []
