from datetime import date
from decimal import Decimal
from functools import partial

import pytest

from production_tracker.config import AppConfig
from production_tracker.db import (
    ItemRecord, StructureEdgeRecord, create_db_engine, create_schema, create_session_factory,
)
from production_tracker.models import FAR_FUTURE
from production_tracker.sql_store import SqlUnitOfWork

EPOCH = date(2000, 1, 1)


# --- Database fixtures (SQLite in memory) ---

@pytest.fixture
def config():
    return AppConfig(database_url="sqlite:///:memory:")


@pytest.fixture
def engine(config):
    engine = create_db_engine(config)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(config, engine):
    return create_session_factory(config, engine)


@pytest.fixture
def uow_factory(session_factory):
    """Callable opening a fresh SqlUnitOfWork, as the services expect."""
    return partial(SqlUnitOfWork, session_factory, "WO-")


@pytest.fixture
def make_item(session_factory):
    def _make_item(item_id, flag="B", material=None, labour=None, overhead=None, description=None):
        with session_factory.begin() as session:
            session.add(ItemRecord(
                item_id=item_id, mb_flag=flag, description=description,
                material_cost=material, labour_cost=labour, overhead_cost=overhead,
            ))
    return _make_item


@pytest.fixture
def make_edge(session_factory):
    def _make_edge(parent, component, quantity, sequence=1, effective_from=EPOCH, effective_to=FAR_FUTURE, work_centre=None):
        with session_factory.begin() as session:
            session.add(StructureEdgeRecord(
                parent=parent, component=component, quantity=Decimal(str(quantity)), sequence=sequence,
                effective_from=effective_from, effective_to=effective_to, work_centre=work_centre,
                auto_issue=False,
            ))
    return _make_edge


@pytest.fixture
def fg1_catalogue(make_item, make_edge):
    """FG1 built from 2 x A and 1.5 x B."""
    make_item("FG1", flag="M", material=Decimal("40"), labour=Decimal("10"))
    make_item("A", material=Decimal("2.5"))
    make_item("B", material=Decimal("1"), overhead=Decimal("0.5"))
    make_item("SPARE", material=Decimal("3"))
    make_edge("FG1", "A", "2", sequence=1)
    make_edge("FG1", "B", "1.5", sequence=2)


# --- File-backed database for tests that need several connections ---

@pytest.fixture
def file_session_factory(tmp_path):
    file_config = AppConfig(database_url=f"sqlite:///{tmp_path / 'production.db'}")
    engine = create_db_engine(file_config)
    create_schema(engine)
    yield create_session_factory(file_config, engine)
    engine.dispose()


@pytest.fixture
def file_uow_factory(file_session_factory):
    with file_session_factory.begin() as session:
        session.add_all([
            ItemRecord(item_id="FG1", mb_flag="M", material_cost=Decimal("50")),
            ItemRecord(item_id="A", mb_flag="B", material_cost=Decimal("2.5")),
            StructureEdgeRecord(
                parent="FG1", component="A", quantity=Decimal("2"), sequence=1,
                effective_from=EPOCH, effective_to=FAR_FUTURE, auto_issue=False,
            ),
        ])
    return partial(SqlUnitOfWork, file_session_factory, "WO-")
