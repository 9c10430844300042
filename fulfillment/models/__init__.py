from fulfillment.models.product import Product
from fulfillment.models.inventory import Inventory, InventoryType, StockRow
from fulfillment.models.movement import Movement, MovementType, MovementStatus
from fulfillment.models.order import Order, OrderItem, OrderStatus

__all__ = [
    "Product",
    "Inventory",
    "InventoryType",
    "StockRow",
    "Movement",
    "MovementType",
    "MovementStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
]
