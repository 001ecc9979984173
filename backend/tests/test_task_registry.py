"""Tests for the task registry."""

import pytest

from core.exceptions import DuplicateTaskNameError, UnknownTaskError
from tasks.registry import TaskRegistry, get_task_registry
from conftest import FakeHandler


@pytest.mark.unit
class TestRegister:

    def test_register_returns_spec(self, registry):
        spec = registry.register("resetCases", FakeHandler("resetCases"), timeout=30)
        assert spec.name == "resetCases"
        assert spec.timeout == 30.0
        assert spec.handler_ref.endswith(":resetCases")

    def test_default_ref_uses_namespace(self, registry):
        spec = registry.register("parseCourts", FakeHandler("parseCourts"))
        assert spec.handler_ref == "handler:local:000000000000:parseCourts"

    def test_default_timeout_from_settings(self, registry):
        spec = registry.register("parseCourts", FakeHandler("parseCourts"))
        assert spec.timeout == 3600.0

    def test_explicit_handler_ref(self, registry):
        spec = registry.register("a", FakeHandler("a"), handler_ref="arn:custom:a")
        assert registry.resolve("a") == "arn:custom:a"
        assert spec.handler_ref == "arn:custom:a"

    def test_duplicate_name_rejected(self, registry):
        registry.register("a", FakeHandler("a"))
        with pytest.raises(DuplicateTaskNameError) as exc:
            registry.register("a", FakeHandler("a-again"))
        assert exc.value.name == "a"
        assert exc.value.status_code == 409

    def test_duplicate_rejection_keeps_first(self, registry):
        first = FakeHandler("a")
        registry.register("a", first)
        with pytest.raises(DuplicateTaskNameError):
            registry.register("a", FakeHandler("other"))
        assert registry.get_handler(registry.resolve("a")) is first
        assert len(registry) == 1

    def test_duplicate_handler_ref_rejected(self, registry):
        registry.register("a", FakeHandler("a"), handler_ref="ref:shared")
        with pytest.raises(DuplicateTaskNameError):
            registry.register("b", FakeHandler("b"), handler_ref="ref:shared")
        assert "b" not in registry

    @pytest.mark.parametrize("timeout", [0, -5])
    def test_non_positive_timeout_rejected(self, registry, timeout):
        with pytest.raises(ValueError):
            registry.register("a", FakeHandler("a"), timeout=timeout)
        assert "a" not in registry


@pytest.mark.unit
class TestResolve:

    def test_resolve_registered(self, registry):
        spec = registry.register("a", FakeHandler("a"))
        assert registry.resolve("a") == spec.handler_ref

    def test_resolve_unknown(self, registry):
        with pytest.raises(UnknownTaskError) as exc:
            registry.resolve("missing")
        assert exc.value.name == "missing"
        assert exc.value.status_code == 404

    def test_get_handler_unknown_ref(self, registry):
        with pytest.raises(UnknownTaskError):
            registry.get_handler("handler:nowhere")

    def test_names_in_registration_order(self, registry):
        for name in ("c", "a", "b"):
            registry.register(name, FakeHandler(name))
        assert registry.names == ["c", "a", "b"]

    def test_list_all_metadata(self, registry):
        registry.register("a", FakeHandler("a"), timeout=5)
        [entry] = registry.list_all()
        assert entry["name"] == "a"
        assert entry["timeout"] == 5.0
        assert entry["display_name"] == "a"
        assert entry["description"] == "fake a"


@pytest.mark.unit
def test_singleton_registry():
    assert get_task_registry() is get_task_registry()
    assert isinstance(get_task_registry(), TaskRegistry)
