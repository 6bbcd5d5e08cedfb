# Module: src/production_tracker/events.py
# Description: Events published by the core and an in-process dispatcher that delivers them.

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, ClassVar, Dict, List, Tuple

from .models import ProductionOrder, StructureEdge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderCreated:
    topic: ClassVar[str] = "production_order.created"
    order: ProductionOrder


@dataclass(frozen=True)
class MaterialsIssued:
    topic: ClassVar[str] = "production_order.materials_issued"
    order: ProductionOrder
    materials: Dict[str, Decimal] = field(default_factory=dict)
    location: str = ""


@dataclass(frozen=True)
class GoodsReceived:
    topic: ClassVar[str] = "production_order.goods_received"
    order: ProductionOrder
    quantity: Decimal
    location: str = ""
    closed_order: bool = False


@dataclass(frozen=True)
class StructureEdgeCreated:
    topic: ClassVar[str] = "structure_edge.created"
    edge: StructureEdge


Handler = Callable[[object], None]


def _pattern_matches(pattern: str, topic: str) -> bool:
    """Very small pattern helper.

    Supported:
      - exact match
      - prefix match using trailing '.'
      - wildcard 'prefix.*' treated as prefix match
      - '*' matches everything
    """
    if not pattern:
        return False
    if pattern == "*" or pattern == topic:
        return True
    if pattern.endswith(".*"):
        return topic.startswith(pattern[:-1])  # keep trailing '.'
    if pattern.endswith("."):
        return topic.startswith(pattern)
    return False


class EventDispatcher:
    """
    Delivers published events to handlers subscribed by topic pattern.

    Delivery is fire-and-forget: a failing handler is logged and never
    propagates back into the operation that published the event.
    """

    def __init__(self):
        self._subscriptions: List[Tuple[str, Handler]] = []

    def subscribe(self, pattern: str, handler: Handler) -> None:
        self._subscriptions.append((pattern, handler))
        logger.debug(f"Subscribed handler {getattr(handler, '__name__', handler)!r} to '{pattern}'")

    def unsubscribe(self, pattern: str, handler: Handler) -> None:
        self._subscriptions = [
            (p, h) for p, h in self._subscriptions if not (p == pattern and h == handler)
        ]

    def publish(self, event: object) -> None:
        topic = getattr(event, "topic", type(event).__name__)
        handlers = [h for p, h in self._subscriptions if _pattern_matches(p, topic)]
        logger.debug(f"Publishing {topic} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler {getattr(handler, '__name__', handler)!r} failed for {topic}")


class NullNotifier:
    """Notifier that drops every event."""

    def publish(self, event: object) -> None:
        logger.debug(f"Dropping event {getattr(event, 'topic', type(event).__name__)}")
