"""Tests for the slug <-> table name registry."""

import pytest

from dbconnectors.exceptions import ConfigurationError, TableLookupError
from dbconnectors.temp_tables import TableRegistry


@pytest.fixture
def registry() -> TableRegistry:
    registry = TableRegistry()
    registry.add("orders", "scratch.tmp_TTH_orders_20240101000000_1000001")
    registry.add("items", "scratch.tmp_TTH_items_20240101000000_1000002")
    return registry


def test_lookup_both_directions(registry: TableRegistry) -> None:
    assert registry.name_for("orders") == "scratch.tmp_TTH_orders_20240101000000_1000001"
    assert registry.slug_for("scratch.tmp_TTH_items_20240101000000_1000002") == "items"


def test_resolve(registry: TableRegistry) -> None:
    expected = ("orders", "scratch.tmp_TTH_orders_20240101000000_1000001")

    assert registry.resolve("orders") == expected
    assert registry.resolve("scratch.tmp_TTH_orders_20240101000000_1000001") == expected
    with pytest.raises(TableLookupError) as exc_info:
        registry.resolve("unknown")
    assert exc_info.value.key == "unknown"


def test_lookup_error_is_a_lookup_error(registry: TableRegistry) -> None:
    with pytest.raises(LookupError):
        registry.name_for("unknown")


def test_duplicate_slug(registry: TableRegistry) -> None:
    with pytest.raises(ConfigurationError):
        registry.add("orders", "scratch.other")


def test_duplicate_name(registry: TableRegistry) -> None:
    with pytest.raises(ConfigurationError):
        registry.add("copy", "scratch.tmp_TTH_orders_20240101000000_1000001")


def test_remove_slug_keeps_order(registry: TableRegistry) -> None:
    registry.add("events", "scratch.events")

    registry.remove_slug("items")

    assert [slug for slug, _ in registry] == ["orders", "events"]
    assert "scratch.tmp_TTH_items_20240101000000_1000002" not in registry
    assert len(registry) == 2


def test_as_mapping_is_a_view(registry: TableRegistry) -> None:
    mapping = registry.as_mapping()
    registry.add("events", "scratch.events")

    assert mapping["events"] == "scratch.events"
    with pytest.raises(TypeError):
        mapping["other"] = "x"


def test_clear(registry: TableRegistry) -> None:
    registry.clear()

    assert len(registry) == 0
    assert not registry.has_slug("orders")
    assert not registry.has_name("scratch.tmp_TTH_orders_20240101000000_1000001")
