from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from production_tracker.exceptions import ItemNotFound, ItemNotManufactured
from production_tracker.models import ItemInfo, LineSeed, ManufacturingFlag, StructureEdge
from production_tracker.planner import OrderMaterialPlanner


# --- Fixtures ---

@pytest.fixture
def mock_store():
    """Provides a mock StructureStore with FG1 -> A x2, FG1 -> B x1.5."""
    items = {
        "FG1": ItemInfo("FG1", ManufacturingFlag.MANUFACTURED, Decimal("50")),
        "A": ItemInfo("A", ManufacturingFlag.PURCHASED, Decimal("2.5")),
        "B": ItemInfo("B", ManufacturingFlag.PURCHASED, None),
        "RAW": ItemInfo("RAW", ManufacturingFlag.PURCHASED, Decimal("1")),
    }
    edges = {
        "FG1": [
            StructureEdge("FG1", "A", Decimal("2"), sequence=1, effective_from=date(2020, 1, 1)),
            StructureEdge("FG1", "B", Decimal("1.5"), sequence=2, effective_from=date(2020, 1, 1)),
        ],
    }
    store = Mock()
    store.item_info.side_effect = lambda item_id: items.get(item_id)
    store.active_edges_of.side_effect = lambda parent, as_of: edges.get(parent, [])
    return store


@pytest.fixture
def planner(mock_store):
    return OrderMaterialPlanner(mock_store)


# --- Test Cases ---

def test_plan_lines_multiplies_quantity(planner):
    seeds = planner.plan_lines("FG1", Decimal("100"))
    assert seeds == [
        LineSeed(item_id="A", required=Decimal("200"), standard_cost=Decimal("2.5")),
        LineSeed(item_id="B", required=Decimal("150"), standard_cost=Decimal("0")),
    ]


def test_plan_lines_exact_decimal_arithmetic(planner):
    seeds = planner.plan_lines("FG1", Decimal("0.1"))
    assert seeds[1].required == Decimal("0.15")


def test_plan_lines_accepts_int_quantity(planner):
    seeds = planner.plan_lines("FG1", 3)
    assert seeds[0].required == Decimal("6")


def test_plan_lines_uses_as_of(planner, mock_store):
    planner.plan_lines("FG1", 1, as_of=date(2024, 2, 2))
    mock_store.active_edges_of.assert_called_once_with("FG1", date(2024, 2, 2))


def test_plan_lines_as_of_defaults_to_today(planner, mock_store):
    planner.plan_lines("FG1", 1)
    mock_store.active_edges_of.assert_called_once_with("FG1", date.today())


def test_plan_lines_unknown_item(planner):
    with pytest.raises(ItemNotFound) as excinfo:
        planner.plan_lines("NOPE", 1)
    assert excinfo.value.item_id == "NOPE"


def test_plan_lines_purchased_item(planner):
    with pytest.raises(ItemNotManufactured) as excinfo:
        planner.plan_lines("A", 1)
    assert excinfo.value.item_id == "A"


@pytest.mark.parametrize("quantity", [0, -5])
def test_plan_lines_non_positive_quantity(planner, mock_store, quantity):
    with pytest.raises(ValueError):
        planner.plan_lines("FG1", quantity)
    mock_store.active_edges_of.assert_not_called()


def test_plan_lines_without_components(planner, mock_store):
    mock_store.item_info.side_effect = lambda item_id: ItemInfo(item_id, ManufacturingFlag.MANUFACTURED)
    assert planner.plan_lines("EMPTY", 10) == []


def test_plan_lines_merges_duplicate_component(mock_store, caplog):
    mock_store.active_edges_of.side_effect = lambda parent, as_of: [
        StructureEdge("FG1", "RAW", Decimal("1"), sequence=1, effective_from=date(2020, 1, 1)),
        StructureEdge("FG1", "RAW", Decimal("2"), sequence=2, effective_from=date(2020, 1, 1)),
    ]
    with caplog.at_level("WARNING"):
        seeds = OrderMaterialPlanner(mock_store).plan_lines("FG1", 10)
    assert seeds == [LineSeed(item_id="RAW", required=Decimal("30"), standard_cost=Decimal("1"))]
    assert "more than one active edge" in caplog.text


def test_plan_lines_unknown_component_costs_zero(mock_store):
    mock_store.active_edges_of.side_effect = lambda parent, as_of: [
        StructureEdge("FG1", "GHOST", Decimal("1"), effective_from=date(2020, 1, 1)),
    ]
    seeds = OrderMaterialPlanner(mock_store).plan_lines("FG1", 4)
    assert seeds == [LineSeed(item_id="GHOST", required=Decimal("4"), standard_cost=Decimal("0"))]
