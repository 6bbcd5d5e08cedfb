# Module: src/production_tracker/structure.py
# Description: Maintenance of bill of materials edges: create, update, delete and lookups.

import logging
from dataclasses import replace
from datetime import date
from typing import Callable, List, Optional

from .events import NullNotifier, StructureEdgeCreated
from .exceptions import ItemNotFound, ItemNotManufactured, StructureEdgeNotFound
from .interfaces import Notifier, UnitOfWork
from .models import EdgeOptions, StructureEdge

logger = logging.getLogger(__name__)

# Public field name -> StructureEdge attribute
UPDATABLE_FIELDS = {
    "quantity": "quantity_per_unit",
    "sequence": "sequence",
    "work_centre": "work_centre",
    "effective_from": "effective_from",
    "effective_to": "effective_to",
    "auto_issue": "auto_issue",
    "remark": "remark",
}


class StructureMaintenance:
    def __init__(self, uow_factory: Callable[[], UnitOfWork], notifier: Optional[Notifier] = None):
        self.uow_factory = uow_factory
        self.notifier = notifier or NullNotifier()

    def create_edge(self, parent: str, component: str, quantity, options: Optional[EdgeOptions] = None) -> StructureEdge:
        """
        Adds component to the structure of parent at the next free sequence.

        Raises:
            ItemNotFound: parent or component does not exist.
            ItemNotManufactured: parent is not a manufactured item.
            ValueError: quantity is not positive.
        """
        options = options or EdgeOptions()
        with self.uow_factory() as uow:
            parent_info = uow.structure.item_info(parent)
            if parent_info is None:
                raise ItemNotFound(parent)
            if uow.structure.item_info(component) is None:
                raise ItemNotFound(component)
            if not parent_info.is_manufactured:
                raise ItemNotManufactured(parent)

            edge = StructureEdge(
                parent=parent,
                component=component,
                quantity_per_unit=quantity,
                sequence=uow.edges.next_sequence(parent),
                effective_from=options.effective_from,
                effective_to=options.effective_to,
                work_centre=options.work_centre,
                auto_issue=options.auto_issue,
                remark=options.remark,
            )
            uow.edges.add(edge)

        logger.info(f"Created BOM entry {parent} -> {component} (qty {edge.quantity_per_unit}, sequence {edge.sequence})")
        self.notifier.publish(StructureEdgeCreated(edge=replace(edge)))
        return edge

    def update_edge(self, parent: str, component: str, **changes) -> List[StructureEdge]:
        """Applies changes to every edge of (parent, component) and returns the updated edges."""
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValueError(f"Cannot update BOM entry field(s): {', '.join(unknown)}")
        if not changes:
            raise ValueError("No changes given for BOM entry update")

        attribute_changes = {UPDATABLE_FIELDS[name]: value for name, value in changes.items()}
        with self.uow_factory() as uow:
            existing = uow.edges.find(parent, component)
            if not existing:
                raise StructureEdgeNotFound(parent, component)
            # replace() re-runs edge validation on the merged values
            updated = [replace(edge, **attribute_changes) for edge in existing]
            normalised = {attr: getattr(updated[0], attr) for attr in attribute_changes}
            uow.edges.update(parent, component, normalised)

        logger.info(f"Updated BOM entry {parent} -> {component}: {', '.join(sorted(changes))}")
        return updated

    def delete_edge(self, parent: str, component: str) -> None:
        with self.uow_factory() as uow:
            removed = uow.edges.delete(parent, component)
            if removed == 0:
                raise StructureEdgeNotFound(parent, component)
        logger.info(f"Deleted BOM entry {parent} -> {component} ({removed} row(s))")

    def get_structure(self, parent: str, as_of: Optional[date] = None) -> List[StructureEdge]:
        """Direct edges of parent active on as_of (default today), by sequence."""
        with self.uow_factory() as uow:
            return uow.structure.active_edges_of(parent, as_of or date.today())

    def where_used(self, component: str) -> List[StructureEdge]:
        """Every edge that uses component, regardless of effectivity."""
        with self.uow_factory() as uow:
            return uow.edges.where_used(component)
