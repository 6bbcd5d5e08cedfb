"""
File: src/production_tracker/db.py
Relational layout for items, structure edges, production orders and stock movements.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
    UniqueConstraint, create_engine, select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import AppConfig

logger = logging.getLogger(__name__)

ORDER_COUNTER = "production_order"


class Base(DeclarativeBase):
    pass


# ============= ITEM MASTER =============
class ItemRecord(Base):
    __tablename__ = "item"

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    mb_flag: Mapped[str] = mapped_column(String(1), default="B", nullable=False)  # M|B|O

    # Standard cost components; the sum is carried onto order lines
    material_cost: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    labour_cost: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    overhead_cost: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)


# ============= BILL OF MATERIALS =============
class StructureEdgeRecord(Base):
    __tablename__ = "structure_edge"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent: Mapped[str] = mapped_column(String(64), nullable=False)
    component: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    work_centre: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Effectivity
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date] = mapped_column(Date, nullable=False)

    auto_issue: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)

Index("ix_structure_edge_key", StructureEdgeRecord.parent, StructureEdgeRecord.component)
Index("ix_structure_edge_effectivity", StructureEdgeRecord.parent, StructureEdgeRecord.effective_from, StructureEdgeRecord.effective_to)


# ============= PRODUCTION ORDERS =============
class ProductionOrderRecord(Base):
    __tablename__ = "production_order"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    top_item: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    required_by: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(64), nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    lines: Mapped[list["ProductionOrderLineRecord"]] = relationship(
        back_populates="production_order",
        order_by="ProductionOrderLineRecord.line_no",
        cascade="all, delete-orphan",
    )


class ProductionOrderLineRecord(Base):
    __tablename__ = "production_order_line"
    __table_args__ = (UniqueConstraint("order_id", "item_id", name="uq_production_order_line_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("production_order.order_id"), nullable=False, index=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    required: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    issued: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)
    received: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)
    standard_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)

    production_order: Mapped[ProductionOrderRecord] = relationship(back_populates="lines")


# ============= INVENTORY LEDGER =============
class StockMovementRecord(Base):
    __tablename__ = "stock_movement"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_tag: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)  # signed
    cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)
    memo: Mapped[str | None] = mapped_column(String(256), nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    serial_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    auto_cost: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

Index("ix_stock_movement_item_location", StockMovementRecord.item_id, StockMovementRecord.location)


# ============= SEQUENCES =============
class IdCounterRecord(Base):
    """Named counters incremented in place so concurrent allocators serialize on the row."""
    __tablename__ = "id_counter"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


def create_db_engine(config: AppConfig) -> Engine:
    url = config.database_url
    kwargs = {"future": True, "echo": config.echo_sql}
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, otherwise every session would see its own empty database
        kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


def create_session_factory(config: AppConfig, engine: Engine | None = None) -> sessionmaker:
    engine = engine or create_db_engine(config)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def create_schema(engine: Engine) -> None:
    """Create all tables and seed the order counter from any existing orders."""
    Base.metadata.create_all(engine)
    with sessionmaker(bind=engine, future=True).begin() as session:
        counter = session.get(IdCounterRecord, ORDER_COUNTER)
        if counter is None:
            highest = session.scalar(select(ProductionOrderRecord.order_id).order_by(ProductionOrderRecord.order_id.desc()).limit(1))
            session.add(IdCounterRecord(name=ORDER_COUNTER, value=highest or 0))
            logger.info(f"Seeded '{ORDER_COUNTER}' counter at {highest or 0}")
