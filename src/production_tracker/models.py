# Module: src/production_tracker/models.py
# Description: Defines data structures used throughout the application.

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

# Open-ended effectivity for structure edges without an end date
FAR_FUTURE = date(9999, 12, 31)
ZERO = Decimal("0")


class ManufacturingFlag(str, Enum):
    """How an item is sourced."""
    MANUFACTURED = "M"
    PURCHASED = "B"
    OTHER = "O"


class OrderStatus(str, Enum):
    """Enum for production order states."""
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class ItemInfo:
    """Item master data the core needs: sourcing flag and precomputed standard cost."""
    item_id: str
    flag: ManufacturingFlag
    standard_cost: Optional[Decimal] = None
    description: Optional[str] = None

    @property
    def is_manufactured(self) -> bool:
        return self.flag == ManufacturingFlag.MANUFACTURED


@dataclass
class StructureEdge:
    """One parent -> component relationship of a bill of materials."""
    parent: str
    component: str
    quantity_per_unit: Decimal
    sequence: int = 1
    effective_from: date = field(default_factory=date.today)
    effective_to: date = FAR_FUTURE
    work_centre: Optional[str] = None
    auto_issue: bool = False
    remark: Optional[str] = None

    def __post_init__(self):
        self.quantity_per_unit = Decimal(str(self.quantity_per_unit))
        if self.quantity_per_unit <= 0:
            raise ValueError(f"Quantity per unit must be positive for {self.parent} -> {self.component}")
        if self.sequence < 1:
            raise ValueError(f"Sequence must be a positive integer for {self.parent} -> {self.component}")
        if self.effective_from > self.effective_to:
            raise ValueError(
                f"Effective window of {self.parent} -> {self.component} ends ({self.effective_to}) "
                f"before it starts ({self.effective_from})"
            )

    @property
    def key(self):
        return (self.parent, self.component)

    def is_active(self, as_of: date) -> bool:
        return self.effective_from <= as_of <= self.effective_to


@dataclass(frozen=True)
class ExplosionRow:
    """A single edge of a multi-level explosion, tagged with the level it was reached at."""
    level: int
    parent: str
    component: str
    quantity_per_unit: Decimal
    sequence: int
    work_centre: Optional[str] = None
    auto_issue: bool = False


@dataclass(frozen=True)
class LineSeed:
    """Planned requirement for one component of a new order. Issued and received start at zero."""
    item_id: str
    required: Decimal
    standard_cost: Decimal = ZERO


@dataclass
class OrderLine:
    """Required/issued/received quantities of one item within a production order."""
    order_id: int
    item_id: str
    required: Decimal
    issued: Decimal = ZERO
    received: Decimal = ZERO
    standard_cost: Decimal = ZERO

    @property
    def outstanding(self) -> Decimal:
        return self.required - self.received

    @property
    def is_complete(self) -> bool:
        return self.received >= self.required


@dataclass
class ProductionOrder:
    """A production order and the lines it owns, keyed by item id in creation order."""
    order_id: int
    top_item: str
    location: str
    quantity: Decimal
    required_by: date
    start_date: date = field(default_factory=date.today)
    reference: Optional[str] = None
    remark: Optional[str] = None
    closed: bool = False
    lines: Dict[str, OrderLine] = field(default_factory=dict)
    reference_prefix: str = "WO-"

    @property
    def status(self) -> OrderStatus:
        return OrderStatus.CLOSED if self.closed else OrderStatus.OPEN

    @property
    def reference_tag(self) -> str:
        """Tag attached to every ledger movement made on behalf of this order."""
        return f"{self.reference_prefix}{self.order_id}"

    @property
    def tracking_line(self) -> Optional[OrderLine]:
        return self.lines.get(self.top_item)

    @property
    def is_complete(self) -> bool:
        return all(line.is_complete for line in self.lines.values())

    def add_line(self, line: OrderLine) -> None:
        self.lines[line.item_id] = line

    def get_line(self, item_id: str) -> Optional[OrderLine]:
        return self.lines.get(item_id)

    def close(self) -> None:
        self.closed = True


@dataclass
class OrderFilter:
    """Criteria for listing orders. Unset fields do not filter."""
    location: Optional[str] = None
    top_item: Optional[str] = None
    status: Optional[OrderStatus] = None
    required_by: Optional[date] = None  # inclusive ceiling


# Pydantic models for caller-supplied options

class OrderOptions(BaseModel):
    reference: Optional[str] = None
    remark: Optional[str] = None
    start_date: Optional[date] = None


class EdgeOptions(BaseModel):
    work_centre: Optional[str] = None
    effective_from: date = Field(default_factory=date.today)
    effective_to: date = FAR_FUTURE
    auto_issue: bool = False
    remark: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.effective_from > self.effective_to:
            raise ValueError("effective_from must not be after effective_to")
        return self


@dataclass
class MovementRecord:
    """A posted inventory movement, as returned by ledger queries."""
    item_id: str
    location: str
    reference_tag: str
    quantity: Decimal
    memo: Optional[str] = None
    batch_id: Optional[str] = None
    serial_id: Optional[str] = None


def order_snapshot(order: ProductionOrder) -> ProductionOrder:
    """Detached copy of an order so event payloads cannot observe later mutation."""
    copied = ProductionOrder(
        order_id=order.order_id, top_item=order.top_item, location=order.location,
        quantity=order.quantity, required_by=order.required_by, start_date=order.start_date,
        reference=order.reference, remark=order.remark, closed=order.closed,
        reference_prefix=order.reference_prefix,
    )
    for line in order.lines.values():
        copied.add_line(OrderLine(
            order_id=line.order_id, item_id=line.item_id, required=line.required,
            issued=line.issued, received=line.received, standard_cost=line.standard_cost,
        ))
    return copied
