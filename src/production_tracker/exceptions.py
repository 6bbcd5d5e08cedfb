# Module: src/production_tracker/exceptions.py
# Description: Exceptions raised by structure and production order operations.


class ManufacturingError(Exception):
    """Base class for manufacturing failures visible to callers."""
    pass


class ItemNotFound(ManufacturingError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")


class ItemNotManufactured(ManufacturingError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not a manufactured item")


class OrderNotFound(ManufacturingError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Work order {order_id} not found")


class OrderClosed(ManufacturingError):
    """Raised when materials are issued to, or goods received from, a closed order."""

    def __init__(self, order_id: int, action: str = "modify"):
        self.order_id = order_id
        super().__init__(f"Cannot {action} closed work order {order_id}")


class StructureEdgeNotFound(ManufacturingError):
    def __init__(self, parent: str, component: str):
        self.parent = parent
        self.component = component
        super().__init__(f"BOM entry not found: {parent} -> {component}")
