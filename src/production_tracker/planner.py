# Module: src/production_tracker/planner.py
# Description: Derives the component lines of a new production order from the direct structure.

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from .exceptions import ItemNotFound, ItemNotManufactured
from .interfaces import StructureStore
from .models import LineSeed, ZERO

logger = logging.getLogger(__name__)


class OrderMaterialPlanner:
    """Plans single-level material requirements for an order quantity."""

    def __init__(self, store: StructureStore):
        self.store = store

    def validate_top_item(self, top_item: str):
        info = self.store.item_info(top_item)
        if info is None:
            raise ItemNotFound(top_item)
        if not info.is_manufactured:
            raise ItemNotManufactured(top_item)
        return info

    def _component_cost(self, component: str) -> Decimal:
        info = self.store.item_info(component)
        if info is None or info.standard_cost is None:
            logger.warning(f"No standard cost for component {component}, using 0")
            return ZERO
        return info.standard_cost

    def plan_lines(self, top_item: str, order_quantity: Decimal, as_of: Optional[date] = None) -> List[LineSeed]:
        """
        One seed per direct component: required = quantity per unit x order quantity.

        Raises:
            ValueError: order_quantity is not positive.
            ItemNotFound: top_item does not exist.
            ItemNotManufactured: top_item is not a manufactured item.
        """
        order_quantity = Decimal(str(order_quantity))
        if order_quantity <= 0:
            raise ValueError(f"Order quantity must be positive, got {order_quantity}")
        self.validate_top_item(top_item)

        as_of = as_of or date.today()
        required: Dict[str, Decimal] = {}
        costs: Dict[str, Decimal] = {}
        for edge in self.store.active_edges_of(top_item, as_of):
            amount = edge.quantity_per_unit * order_quantity
            if edge.component in required:
                logger.warning(
                    f"Item {top_item} has more than one active edge for component {edge.component}; "
                    f"merging requirements into one line"
                )
                required[edge.component] += amount
                continue
            required[edge.component] = amount
            costs[edge.component] = self._component_cost(edge.component)

        seeds = [LineSeed(item_id=c, required=q, standard_cost=costs[c]) for c, q in required.items()]
        logger.debug(f"Planned {len(seeds)} line(s) for {order_quantity} x {top_item}")
        return seeds
