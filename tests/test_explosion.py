from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from production_tracker.explosion import StructureExplosionEngine
from production_tracker.models import StructureEdge

AS_OF = date(2024, 5, 1)


def edge(parent, component, qty, sequence=1, **kwargs):
    kwargs.setdefault("effective_from", date(2020, 1, 1))
    return StructureEdge(parent=parent, component=component, quantity_per_unit=Decimal(str(qty)), sequence=sequence, **kwargs)


def store_for(edges):
    """Mock StructureStore answering active_edges_of from a fixed edge list."""
    store = Mock()
    store.active_edges_of.side_effect = lambda parent, as_of: sorted(
        (e for e in edges if e.parent == parent and e.is_active(as_of)), key=lambda e: e.sequence
    )
    return store


# --- Acyclic structures ---

def test_explode_two_levels():
    store = store_for([
        edge("FG", "SA", 2, sequence=1),
        edge("FG", "P1", 1, sequence=2),
        edge("SA", "P2", 3, sequence=1, work_centre="WC1"),
        edge("SA", "P1", 4, sequence=2),
    ])
    rows = StructureExplosionEngine(store).explode("FG", AS_OF)

    assert [(r.level, r.parent, r.component) for r in rows] == [
        (1, "FG", "SA"),
        (1, "FG", "P1"),
        (2, "SA", "P2"),
        (2, "SA", "P1"),
    ]
    assert rows[2].quantity_per_unit == Decimal("3")
    assert rows[2].work_centre == "WC1"


def test_explode_levels_increase_along_paths():
    store = store_for([
        edge("FG", "L1", 1),
        edge("L1", "L2", 1),
        edge("L2", "L3", 1),
        edge("L3", "L4", 1),
    ])
    rows = StructureExplosionEngine(store).explode("FG", AS_OF)
    level_of = {r.component: r.level for r in rows}
    assert level_of == {"L1": 1, "L2": 2, "L3": 3, "L4": 4}
    for row in rows:
        if row.parent != "FG":
            assert level_of[row.parent] < row.level


def test_shared_component_rows_are_not_aggregated():
    store = store_for([
        edge("FG", "SA1", 1, sequence=1),
        edge("FG", "SA2", 1, sequence=2),
        edge("SA1", "SCREW", 4),
        edge("SA2", "SCREW", 6),
    ])
    rows = StructureExplosionEngine(store).explode("FG", AS_OF)
    screw_rows = [r for r in rows if r.component == "SCREW"]
    assert [(r.parent, r.quantity_per_unit) for r in screw_rows] == [("SA1", Decimal("4")), ("SA2", Decimal("6"))]
    assert all(r.level == 2 for r in screw_rows)


def test_rows_within_level_ordered_by_parent_then_sequence():
    store = store_for([
        edge("FG", "ZSUB", 1, sequence=1),
        edge("FG", "ASUB", 1, sequence=2),
        edge("ZSUB", "X", 1, sequence=1),
        edge("ASUB", "Y", 1, sequence=2),
        edge("ASUB", "W", 1, sequence=1),
    ])
    rows = StructureExplosionEngine(store).explode("FG", AS_OF)
    level_two = [(r.parent, r.sequence, r.component) for r in rows if r.level == 2]
    assert level_two == [("ASUB", 1, "W"), ("ASUB", 2, "Y"), ("ZSUB", 1, "X")]


def test_component_reached_twice_is_expanded_once():
    # P is introduced at level 1 and again at level 2; its own edge is reported once
    store = store_for([
        edge("FG", "P", 1, sequence=1),
        edge("FG", "SA", 1, sequence=2),
        edge("SA", "P", 1),
        edge("P", "RAW", 5),
    ])
    rows = StructureExplosionEngine(store).explode("FG", AS_OF)
    raw_rows = [r for r in rows if r.component == "RAW"]
    assert len(raw_rows) == 1
    assert raw_rows[0].level == 2


# --- Cyclic structures ---

def test_cycle_terminates_without_duplicate_pairs():
    edges = [edge("A", "B", 1), edge("B", "C", 1), edge("C", "A", 1)]
    rows = StructureExplosionEngine(store_for(edges)).explode("A", AS_OF)

    pairs = [(r.parent, r.component) for r in rows]
    assert pairs == [("A", "B"), ("B", "C"), ("C", "A")]
    assert len(pairs) == len(set(pairs))
    assert len(rows) <= len(edges)


def test_self_referencing_item_terminates():
    rows = StructureExplosionEngine(store_for([edge("A", "A", 1)])).explode("A", AS_OF)
    assert [(r.level, r.parent, r.component) for r in rows] == [(1, "A", "A")]


def test_cycle_below_top_item():
    edges = [
        edge("FG", "SA", 1),
        edge("SA", "SB", 1),
        edge("SB", "SA", 1),
        edge("SB", "RAW", 2, sequence=2),
    ]
    rows = StructureExplosionEngine(store_for(edges)).explode("FG", AS_OF)
    pairs = [(r.parent, r.component) for r in rows]
    assert sorted(pairs) == sorted([("FG", "SA"), ("SA", "SB"), ("SB", "SA"), ("SB", "RAW")])


# --- Empty results and effectivity ---

def test_unknown_item_returns_empty():
    store = store_for([])
    assert StructureExplosionEngine(store).explode("NOPE", AS_OF) == []
    store.active_edges_of.assert_called_once_with("NOPE", AS_OF)


def test_inactive_edges_are_ignored():
    store = store_for([
        edge("FG", "OLD", 1, effective_from=date(2020, 1, 1), effective_to=date(2023, 12, 31)),
        edge("FG", "NEW", 1, sequence=2, effective_from=date(2024, 1, 1)),
    ])
    rows = StructureExplosionEngine(store).explode("FG", AS_OF)
    assert [r.component for r in rows] == ["NEW"]


def test_as_of_defaults_to_today():
    store = store_for([])
    StructureExplosionEngine(store).explode("FG")
    store.active_edges_of.assert_called_once_with("FG", date.today())


def test_repeated_calls_do_not_share_state():
    store = store_for([edge("FG", "A", 1), edge("A", "B", 1)])
    engine = StructureExplosionEngine(store)
    first = engine.explode("FG", AS_OF)
    second = engine.explode("FG", AS_OF)
    assert first == second
    assert len(second) == 2
