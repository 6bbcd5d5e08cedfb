# Module: src/production_tracker/lifecycle.py
# Description: Production order state machine: create, issue materials, receive finished goods, close.

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Mapping, Optional

from .events import GoodsReceived, MaterialsIssued, NullNotifier, OrderCreated
from .exceptions import ItemNotFound, OrderClosed, OrderNotFound
from .interfaces import Notifier, StructureStore, UnitOfWork
from .models import (
    OrderFilter, OrderLine, OrderOptions, ProductionOrder, ZERO, order_snapshot,
)
from .planner import OrderMaterialPlanner

logger = logging.getLogger(__name__)

ISSUE_MEMO = "Work Order Issue"
RECEIPT_MEMO = "Work Order Receipt"

# Matches the scale of the quantity columns
QUANTITY_STEP = Decimal("0.000001")


def _positive(quantity, what: str) -> Decimal:
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        raise ValueError(f"{what} must be positive, got {quantity}")
    return quantity


class OrderLifecycle:
    """
    Drives production orders through OPEN -> CLOSED.

    Every operation runs in its own unit of work obtained from uow_factory.
    Events are published only after that unit of work has committed.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        notifier: Optional[Notifier] = None,
        planner_factory: Callable[[StructureStore], OrderMaterialPlanner] = OrderMaterialPlanner,
    ):
        self.uow_factory = uow_factory
        self.notifier = notifier or NullNotifier()
        self.planner_factory = planner_factory

    def _load_open_order(self, uow: UnitOfWork, order_id: int, action: str) -> ProductionOrder:
        order = uow.orders.get(order_id, for_update=True)
        if order is None:
            raise OrderNotFound(order_id)
        if order.closed:
            raise OrderClosed(order_id, action)
        return order

    def create(
        self,
        top_item: str,
        location: str,
        quantity,
        required_by: date,
        options: Optional[OrderOptions] = None,
    ) -> ProductionOrder:
        """
        Creates an OPEN order for quantity x top_item with one line per direct component
        plus a completion-tracking line keyed by top_item.

        Raises:
            ValueError: quantity is not positive.
            ItemNotFound: top_item does not exist.
            ItemNotManufactured: top_item is not a manufactured item.
        """
        quantity = _positive(quantity, "Order quantity")
        options = options or OrderOptions()

        with self.uow_factory() as uow:
            # Planning validates the item, so nothing is written for a bad request
            seeds = self.planner_factory(uow.structure).plan_lines(top_item, quantity)
            top_info = uow.structure.item_info(top_item)

            order_id = uow.orders.allocate_order_id()
            order = ProductionOrder(
                order_id=order_id,
                top_item=top_item,
                location=location,
                quantity=quantity,
                required_by=required_by,
                start_date=options.start_date or date.today(),
                reference=options.reference,
                remark=options.remark,
            )
            for seed in seeds:
                order.add_line(OrderLine(
                    order_id=order_id, item_id=seed.item_id,
                    required=seed.required, standard_cost=seed.standard_cost,
                ))
            if order.tracking_line is None:
                order.add_line(OrderLine(
                    order_id=order_id, item_id=top_item, required=quantity,
                    standard_cost=top_info.standard_cost if top_info.standard_cost is not None else ZERO,
                ))
            else:
                logger.warning(f"Item {top_item} lists itself as a component; its planned line tracks completion")

            uow.orders.add(order)
            created = uow.orders.get(order_id)

        logger.info(
            f"Created work order {created.reference_tag} for {quantity} x {top_item} at {location} "
            f"with {len(created.lines)} line(s), required by {required_by}"
        )
        self.notifier.publish(OrderCreated(order=order_snapshot(created)))
        return created

    def issue_materials(self, order_id: int, materials: Mapping[str, object], location: str) -> ProductionOrder:
        """
        Issues every (item, quantity) pair of materials to the order in one transaction.

        Each pair raises the line's issued quantity and posts a negative movement
        at location. Items without a line get an unplanned line with zero requirement.
        If any pair fails, no line and no movement of the call is changed.

        Raises:
            OrderNotFound, OrderClosed: the order cannot take issues.
            ValueError: materials is empty or a quantity is not positive.
            ItemNotFound: an unplanned item does not exist.
        """
        with self.uow_factory() as uow:
            order = self._load_open_order(uow, order_id, "issue materials to")

            if not materials:
                raise ValueError("No materials to issue")
            quantities: Dict[str, Decimal] = {
                item_id: _positive(qty, f"Issue quantity for {item_id}") for item_id, qty in materials.items()
            }

            for item_id, qty in quantities.items():
                if order.get_line(item_id) is None:
                    info = uow.structure.item_info(item_id)
                    if info is None:
                        raise ItemNotFound(item_id)
                    unplanned = OrderLine(
                        order_id=order_id, item_id=item_id, required=ZERO,
                        standard_cost=info.standard_cost if info.standard_cost is not None else ZERO,
                    )
                    uow.orders.add_line(unplanned)
                    order.add_line(unplanned)
                    logger.warning(f"Item {item_id} is not planned on {order.reference_tag}; added an unplanned line")

                uow.orders.add_issued(order_id, item_id, qty)
                uow.ledger.post_movement(
                    item_id=item_id,
                    location=location,
                    reference_tag=order.reference_tag,
                    signed_quantity=-qty,
                    cost=ZERO,
                    memo=ISSUE_MEMO,
                    auto_cost=True,
                )
                logger.debug(f"Issued {qty} x {item_id} from {location} to {order.reference_tag}")

            updated = uow.orders.get(order_id)

        logger.info(f"Issued {len(quantities)} material(s) to {updated.reference_tag} from {location}")
        self.notifier.publish(MaterialsIssued(order=order_snapshot(updated), materials=dict(quantities), location=location))
        return updated

    def receive_finished_goods(
        self,
        order_id: int,
        quantity,
        location: str,
        batch_id: Optional[str] = None,
        serial_id: Optional[str] = None,
    ) -> ProductionOrder:
        """
        Books quantity units of the top item into stock and closes the order once every line is complete.

        The tracking line receives the full quantity. Every other line is credited
        with the share of its requirement embodied in the receipt.

        Raises:
            OrderNotFound, OrderClosed: the order cannot take receipts.
            ValueError: quantity is not positive.
        """
        with self.uow_factory() as uow:
            order = self._load_open_order(uow, order_id, "receive goods for")
            quantity = _positive(quantity, "Receipt quantity")

            if order.tracking_line is None:
                # Orders created outside this service may lack one
                tracking = OrderLine(order_id=order_id, item_id=order.top_item, required=order.quantity)
                uow.orders.add_line(tracking)
                order.add_line(tracking)

            tracking = order.tracking_line
            completes_tracking = tracking.received + quantity >= tracking.required
            for line in order.lines.values():
                if line.item_id == order.top_item:
                    credit = quantity
                else:
                    credit = (quantity * line.required / order.quantity).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
                    if completes_tracking:
                        # The receipt that finishes the order absorbs earlier rounding
                        credit = max(credit, line.required - line.received)
                if credit > 0:
                    uow.orders.add_received(order_id, line.item_id, credit)

            uow.ledger.post_movement(
                item_id=order.top_item,
                location=location,
                reference_tag=order.reference_tag,
                signed_quantity=quantity,
                cost=ZERO,
                memo=RECEIPT_MEMO,
                batch_id=batch_id,
                serial_id=serial_id,
                auto_cost=True,
            )

            updated = uow.orders.get(order_id)
            closed_now = updated.is_complete
            if closed_now:
                uow.orders.mark_closed(order_id)
                updated.close()

        logger.info(f"Received {quantity} x {updated.top_item} at {location} against {updated.reference_tag}")
        if closed_now:
            logger.info(f"Work order {updated.reference_tag} is complete and has been closed")
        self.notifier.publish(GoodsReceived(
            order=order_snapshot(updated), quantity=quantity, location=location, closed_order=closed_now,
        ))
        return updated

    def get_order(self, order_id: int) -> ProductionOrder:
        with self.uow_factory() as uow:
            order = uow.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list_orders(self, order_filter: Optional[OrderFilter] = None) -> List[ProductionOrder]:
        """Orders matching order_filter, newest first."""
        with self.uow_factory() as uow:
            return uow.orders.list(order_filter or OrderFilter())
