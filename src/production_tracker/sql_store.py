# Module: src/production_tracker/sql_store.py
# Description: SQLAlchemy implementations of the store, ledger and repositories, bound to one session.

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .db import (
    ORDER_COUNTER, IdCounterRecord, ItemRecord, ProductionOrderLineRecord,
    ProductionOrderRecord, StockMovementRecord, StructureEdgeRecord,
)
from .models import (
    ItemInfo, ManufacturingFlag, MovementRecord, OrderFilter, OrderLine, OrderStatus,
    ProductionOrder, StructureEdge, ZERO,
)

logger = logging.getLogger(__name__)

# Columns callers may change on an existing structure edge
EDGE_UPDATABLE_FIELDS = {
    "quantity": "quantity",
    "quantity_per_unit": "quantity",
    "sequence": "sequence",
    "work_centre": "work_centre",
    "effective_from": "effective_from",
    "effective_to": "effective_to",
    "auto_issue": "auto_issue",
    "remark": "remark",
}


def _edge_from_record(record: StructureEdgeRecord) -> StructureEdge:
    return StructureEdge(
        parent=record.parent,
        component=record.component,
        quantity_per_unit=Decimal(record.quantity),
        sequence=record.sequence,
        effective_from=record.effective_from,
        effective_to=record.effective_to,
        work_centre=record.work_centre or None,
        auto_issue=bool(record.auto_issue),
        remark=record.remark or None,
    )


class SqlStructureStore:
    def __init__(self, session: Session):
        self.session = session

    def active_edges_of(self, parent_id: str, as_of: date) -> List[StructureEdge]:
        stmt = (
            select(StructureEdgeRecord)
            .where(StructureEdgeRecord.parent == parent_id)
            .where(StructureEdgeRecord.effective_from <= as_of)
            .where(StructureEdgeRecord.effective_to >= as_of)
            .order_by(StructureEdgeRecord.sequence, StructureEdgeRecord.id)
        )
        return [_edge_from_record(r) for r in self.session.scalars(stmt)]

    def item_info(self, item_id: str) -> Optional[ItemInfo]:
        record = self.session.get(ItemRecord, item_id)
        if record is None:
            return None
        try:
            flag = ManufacturingFlag(record.mb_flag)
        except ValueError:
            logger.warning(f"Item {item_id} has unrecognised manufacturing flag '{record.mb_flag}', treating as OTHER")
            flag = ManufacturingFlag.OTHER

        cost_parts = [record.material_cost, record.labour_cost, record.overhead_cost]
        standard_cost = None
        if any(part is not None for part in cost_parts):
            standard_cost = sum((Decimal(p) for p in cost_parts if p is not None), ZERO)
        return ItemInfo(item_id=record.item_id, flag=flag, standard_cost=standard_cost, description=record.description)


class SqlInventoryLedger:
    def __init__(self, session: Session):
        self.session = session

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
        self.session.add(StockMovementRecord(
            item_id=item_id, location=location, reference_tag=reference_tag,
            quantity=signed_quantity, cost=cost, memo=memo,
            batch_id=batch_id, serial_id=serial_id, auto_cost=auto_cost,
        ))
        # Flush now so a rejected row fails inside the caller's batch, not at commit
        self.session.flush()
        logger.debug(f"Posted {signed_quantity} of {item_id} at {location} for {reference_tag}")

    def movements(self, reference_tag: Optional[str] = None, item_id: Optional[str] = None) -> List[MovementRecord]:
        stmt = select(StockMovementRecord).order_by(StockMovementRecord.id)
        if reference_tag is not None:
            stmt = stmt.where(StockMovementRecord.reference_tag == reference_tag)
        if item_id is not None:
            stmt = stmt.where(StockMovementRecord.item_id == item_id)
        return [
            MovementRecord(
                item_id=r.item_id, location=r.location, reference_tag=r.reference_tag,
                quantity=Decimal(r.quantity), memo=r.memo, batch_id=r.batch_id, serial_id=r.serial_id,
            )
            for r in self.session.scalars(stmt)
        ]


class SqlOrderRepository:
    def __init__(self, session: Session, reference_prefix: str = "WO-"):
        self.session = session
        self.reference_prefix = reference_prefix

    def allocate_order_id(self) -> int:
        # Increment first: the write lock taken by the UPDATE serializes concurrent allocators
        result = self.session.execute(
            update(IdCounterRecord)
            .where(IdCounterRecord.name == ORDER_COUNTER)
            .values(value=IdCounterRecord.value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            highest = self.session.scalar(select(func.max(ProductionOrderRecord.order_id))) or 0
            self.session.add(IdCounterRecord(name=ORDER_COUNTER, value=highest + 1))
            self.session.flush()
            return highest + 1
        return self.session.scalar(
            select(IdCounterRecord.value)
            .where(IdCounterRecord.name == ORDER_COUNTER)
            .execution_options(populate_existing=True)
        )

    def add(self, order: ProductionOrder) -> None:
        record = ProductionOrderRecord(
            order_id=order.order_id, top_item=order.top_item, location=order.location,
            required_by=order.required_by, start_date=order.start_date, quantity=order.quantity,
            reference=order.reference, remark=order.remark, closed=order.closed,
        )
        for line_no, line in enumerate(order.lines.values(), start=1):
            record.lines.append(ProductionOrderLineRecord(
                line_no=line_no, item_id=line.item_id, required=line.required,
                issued=line.issued, received=line.received, standard_cost=line.standard_cost,
            ))
        self.session.add(record)
        self.session.flush()

    def _to_order(self, record: ProductionOrderRecord) -> ProductionOrder:
        order = ProductionOrder(
            order_id=record.order_id,
            top_item=record.top_item,
            location=record.location,
            quantity=Decimal(record.quantity),
            required_by=record.required_by,
            start_date=record.start_date,
            reference=record.reference or None,
            remark=record.remark or None,
            closed=bool(record.closed),
            reference_prefix=self.reference_prefix,
        )
        for line in record.lines:
            order.add_line(OrderLine(
                order_id=record.order_id, item_id=line.item_id,
                required=Decimal(line.required), issued=Decimal(line.issued),
                received=Decimal(line.received), standard_cost=Decimal(line.standard_cost),
            ))
        return order

    def get(self, order_id: int, for_update: bool = False) -> Optional[ProductionOrder]:
        if for_update:
            # SQLite ignores FOR UPDATE; this no-op write takes the database write lock
            # before the order is read, so a concurrent close cannot slip in between
            self.session.execute(
                update(ProductionOrderRecord)
                .where(ProductionOrderRecord.order_id == order_id)
                .values(closed=ProductionOrderRecord.closed)
                .execution_options(synchronize_session=False)
            )
        stmt = (
            select(ProductionOrderRecord)
            .where(ProductionOrderRecord.order_id == order_id)
            .options(selectinload(ProductionOrderRecord.lines))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        record = self.session.scalars(stmt).first()
        return self._to_order(record) if record is not None else None

    def list(self, order_filter: OrderFilter) -> List[ProductionOrder]:
        stmt = select(ProductionOrderRecord).options(selectinload(ProductionOrderRecord.lines))
        if order_filter.location is not None:
            stmt = stmt.where(ProductionOrderRecord.location == order_filter.location)
        if order_filter.top_item is not None:
            stmt = stmt.where(ProductionOrderRecord.top_item == order_filter.top_item)
        if order_filter.status == OrderStatus.OPEN:
            stmt = stmt.where(ProductionOrderRecord.closed.is_(False))
        elif order_filter.status == OrderStatus.CLOSED:
            stmt = stmt.where(ProductionOrderRecord.closed.is_(True))
        if order_filter.required_by is not None:
            stmt = stmt.where(ProductionOrderRecord.required_by <= order_filter.required_by)
        stmt = stmt.order_by(ProductionOrderRecord.order_id.desc())
        return [self._to_order(r) for r in self.session.scalars(stmt)]

    def add_line(self, line: OrderLine) -> None:
        last_line_no = self.session.scalar(
            select(func.max(ProductionOrderLineRecord.line_no)).where(ProductionOrderLineRecord.order_id == line.order_id)
        ) or 0
        self.session.add(ProductionOrderLineRecord(
            order_id=line.order_id, line_no=last_line_no + 1, item_id=line.item_id,
            required=line.required, issued=line.issued, received=line.received,
            standard_cost=line.standard_cost,
        ))
        self.session.flush()

    def _increment(self, order_id: int, item_id: str, column, quantity: Decimal) -> None:
        result = self.session.execute(
            update(ProductionOrderLineRecord)
            .where(ProductionOrderLineRecord.order_id == order_id)
            .where(ProductionOrderLineRecord.item_id == item_id)
            .values({column: column + quantity})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise LookupError(f"Work order {order_id} has no line for {item_id}")

    def add_issued(self, order_id: int, item_id: str, quantity: Decimal) -> None:
        self._increment(order_id, item_id, ProductionOrderLineRecord.issued, quantity)

    def add_received(self, order_id: int, item_id: str, quantity: Decimal) -> None:
        self._increment(order_id, item_id, ProductionOrderLineRecord.received, quantity)

    def mark_closed(self, order_id: int) -> None:
        self.session.execute(
            update(ProductionOrderRecord)
            .where(ProductionOrderRecord.order_id == order_id)
            .values(closed=True)
            .execution_options(synchronize_session=False)
        )


class SqlEdgeRepository:
    def __init__(self, session: Session):
        self.session = session

    def next_sequence(self, parent: str) -> int:
        highest = self.session.scalar(
            select(func.max(StructureEdgeRecord.sequence)).where(StructureEdgeRecord.parent == parent)
        )
        return (highest or 0) + 1

    def add(self, edge: StructureEdge) -> None:
        self.session.add(StructureEdgeRecord(
            parent=edge.parent, component=edge.component, quantity=edge.quantity_per_unit,
            sequence=edge.sequence, work_centre=edge.work_centre,
            effective_from=edge.effective_from, effective_to=edge.effective_to,
            auto_issue=edge.auto_issue, remark=edge.remark,
        ))
        self.session.flush()

    def _key_clause(self, parent: str, component: str):
        return (StructureEdgeRecord.parent == parent) & (StructureEdgeRecord.component == component)

    def find(self, parent: str, component: str) -> List[StructureEdge]:
        stmt = (
            select(StructureEdgeRecord)
            .where(self._key_clause(parent, component))
            .order_by(StructureEdgeRecord.effective_from, StructureEdgeRecord.id)
        )
        return [_edge_from_record(r) for r in self.session.scalars(stmt)]

    def update(self, parent: str, component: str, changes: Dict[str, Any]) -> int:
        values = {EDGE_UPDATABLE_FIELDS[name]: value for name, value in changes.items()}
        result = self.session.execute(
            update(StructureEdgeRecord)
            .where(self._key_clause(parent, component))
            .values(values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete(self, parent: str, component: str) -> int:
        result = self.session.execute(
            delete(StructureEdgeRecord)
            .where(self._key_clause(parent, component))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def where_used(self, component: str) -> List[StructureEdge]:
        stmt = (
            select(StructureEdgeRecord)
            .where(StructureEdgeRecord.component == component)
            .order_by(StructureEdgeRecord.parent, StructureEdgeRecord.sequence)
        )
        return [_edge_from_record(r) for r in self.session.scalars(stmt)]


class SqlUnitOfWork:
    """
    One transaction shared by the store, ledger and repositories.

    Commits when the block exits normally; rolls back and re-raises otherwise.
    The session is closed on every exit path.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        reference_prefix: str = "WO-",
        ledger_factory: Optional[Callable[[Session], Any]] = None,
    ):
        self.session_factory = session_factory
        self.reference_prefix = reference_prefix
        self.ledger_factory = ledger_factory or SqlInventoryLedger
        self.session: Optional[Session] = None

    def __enter__(self) -> "SqlUnitOfWork":
        self.session = self.session_factory()
        self.structure = SqlStructureStore(self.session)
        self.ledger = self.ledger_factory(self.session)
        self.orders = SqlOrderRepository(self.session, self.reference_prefix)
        self.edges = SqlEdgeRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.session.commit()
            else:
                logger.debug(f"Rolling back unit of work after {exc_type.__name__}")
                self.session.rollback()
        finally:
            self.session.close()
            self.session = None
