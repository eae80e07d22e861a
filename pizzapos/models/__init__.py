# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    OrderStatus, OrderSource, PaymentMethod, PaymentStatus, PricingRule, MovementType,

    # Identity
    Tenant,

    # Catalog
    Product, RecipeLine, PizzaSize, PizzaFlavor, PizzaFlavorPrice,

    # Inventory
    InventoryItem, InventoryMovement,

    # Orders / payments / audit
    Order, OrderItem, OrderItemModifier, Payment, OrderEvent,
)

__all__ = [
    # Enums
    "OrderStatus", "OrderSource", "PaymentMethod", "PaymentStatus", "PricingRule", "MovementType",

    # Identity
    "Tenant",

    # Catalog
    "Product", "RecipeLine", "PizzaSize", "PizzaFlavor", "PizzaFlavorPrice",

    # Inventory
    "InventoryItem", "InventoryMovement",

    # Orders / payments / audit
    "Order", "OrderItem", "OrderItemModifier", "Payment", "OrderEvent",
]
