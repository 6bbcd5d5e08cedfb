# Module: src/production_tracker/interfaces.py
# Description: Collaborator contracts the explosion engine, planner and order lifecycle call into.

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from .models import ItemInfo, OrderFilter, OrderLine, ProductionOrder, StructureEdge


class StructureStore(Protocol):
    """Read-only access to structure edges and item master data."""

    def active_edges_of(self, parent_id: str, as_of: date) -> List[StructureEdge]:
        """Edges of parent_id whose effective window contains as_of, ordered by sequence."""
        ...

    def item_info(self, item_id: str) -> Optional[ItemInfo]:
        """Item metadata, or None when the item is unknown."""
        ...


class InventoryLedger(Protocol):
    def post_movement(
        self,
        item_id: str,
        location: str,
        reference_tag: str,
        signed_quantity: Decimal,
        cost: Decimal,
        memo: str,
        batch_id: Optional[str] = None,
        serial_id: Optional[str] = None,
        auto_cost: bool = True,
    ) -> None:
        ...


class Notifier(Protocol):
    def publish(self, event: Any) -> None:
        """Fire-and-forget delivery of an event."""
        ...


class OrderRepository(Protocol):
    def allocate_order_id(self) -> int:
        """Next unique order id, serialized against concurrent allocators."""
        ...

    def add(self, order: ProductionOrder) -> None:
        ...

    def get(self, order_id: int, for_update: bool = False) -> Optional[ProductionOrder]:
        """Order with its lines; for_update locks the order row until the transaction ends."""
        ...

    def list(self, order_filter: OrderFilter) -> List[ProductionOrder]:
        ...

    def add_line(self, line: OrderLine) -> None:
        ...

    def add_issued(self, order_id: int, item_id: str, quantity: Decimal) -> None:
        """Increment a line's issued quantity in place."""
        ...

    def add_received(self, order_id: int, item_id: str, quantity: Decimal) -> None:
        """Increment a line's received quantity in place."""
        ...

    def mark_closed(self, order_id: int) -> None:
        ...


class EdgeRepository(Protocol):
    def next_sequence(self, parent: str) -> int:
        ...

    def add(self, edge: StructureEdge) -> None:
        ...

    def find(self, parent: str, component: str) -> List[StructureEdge]:
        ...

    def update(self, parent: str, component: str, changes: Dict[str, Any]) -> int:
        ...

    def delete(self, parent: str, component: str) -> int:
        ...

    def where_used(self, component: str) -> List[StructureEdge]:
        ...


class UnitOfWork(Protocol):
    """One scoped transaction. Commits on clean exit, rolls back when the block raises."""

    structure: StructureStore
    ledger: InventoryLedger
    orders: OrderRepository
    edges: EdgeRepository

    def __enter__(self) -> "UnitOfWork":
        ...

    def __exit__(self, exc_type, exc, tb) -> None:
        ...
