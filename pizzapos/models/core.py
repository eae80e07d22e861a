from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, Integer, JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from decimal import Decimal
from pizzapos.db import Base
from pizzapos.models.common import IdMixin, TSMMixin

# ── Enums ───────────────────────────────────────────────────────────────────
class OrderStatus(PyEnum):
    OPEN = "OPEN"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"

class OrderSource(PyEnum):
    PDV = "PDV"        # staff terminal
    MENU = "MENU"      # digital menu
    KITCHEN = "KITCHEN"

class PaymentMethod(PyEnum):
    PIX = "PIX"
    CASH = "CASH"
    CARD = "CARD"

class PaymentStatus(PyEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"

class PricingRule(PyEnum):
    LARGEST_FLAVOR = "LARGEST_FLAVOR"
    PROPORTIONAL = "PROPORTIONAL"

class MovementType(PyEnum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"

# ── Identity ────────────────────────────────────────────────────────────────
class Tenant(Base, IdMixin, TSMMixin):
    __tablename__ = "tenant"
    name: Mapped[str] = mapped_column(String(160))

# ── Catalog ─────────────────────────────────────────────────────────────────
class Product(Base, IdMixin, TSMMixin):
    __tablename__ = "product"
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenant.id"), index=True)
    name: Mapped[str] = mapped_column(String(160))
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    is_pizza: Mapped[bool] = mapped_column(Boolean, default=False)
    pricing_rule: Mapped[PricingRule] = mapped_column(Enum(PricingRule), default=PricingRule.LARGEST_FLAVOR)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

class RecipeLine(Base, IdMixin, TSMMixin):
    __tablename__ = "recipe_line"
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    # exactly one of the two references is set
    inventory_item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("inventory_item.id"))
    ingredient_product_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("product.id"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    __table_args__ = (
        CheckConstraint(
            "(inventory_item_id IS NULL) <> (ingredient_product_id IS NULL)",
            name="ck_recipe_line_one_target",
        ),
    )

class PizzaSize(Base, IdMixin, TSMMixin):
    __tablename__ = "pizza_size"
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenant.id"))
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"), index=True)
    name: Mapped[str] = mapped_column(String(60))
    max_flavors: Mapped[int] = mapped_column(Integer, default=1)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

class PizzaFlavor(Base, IdMixin, TSMMixin):
    __tablename__ = "pizza_flavor"
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenant.id"))
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"), index=True)
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

class PizzaFlavorPrice(Base, IdMixin, TSMMixin):
    __tablename__ = "pizza_flavor_price"
    flavor_id: Mapped[str] = mapped_column(String(36), ForeignKey("pizza_flavor.id"))
    size_id: Mapped[str] = mapped_column(String(36), ForeignKey("pizza_size.id"))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    __table_args__ = (
        UniqueConstraint("flavor_id", "size_id", name="uq_pizza_flavor_price_pair"),
    )

# ── Inventory ───────────────────────────────────────────────────────────────
class InventoryItem(Base, IdMixin, TSMMixin):
    __tablename__ = "inventory_item"
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenant.id"), index=True)
    name: Mapped[str] = mapped_column(String(160))
    unit: Mapped[str] = mapped_column(String(20))  # e.g. g, kg, ml, l, un
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0)
    minimum: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)

class InventoryMovement(Base, IdMixin, TSMMixin):
    __tablename__ = "inventory_movement"
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_item.id"), index=True)
    type: Mapped[MovementType] = mapped_column(Enum(MovementType))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    reason: Mapped[str | None] = mapped_column(Text)
    ref_order_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("order.id"), index=True)
    meta: Mapped[dict | None] = mapped_column(JSON)

# ── Orders / payments / audit ───────────────────────────────────────────────
class Order(Base, IdMixin, TSMMixin):
    __tablename__ = "order"
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenant.id"), index=True)
    source: Mapped[OrderSource] = mapped_column(Enum(OrderSource), default=OrderSource.PDV)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus), default=OrderStatus.OPEN)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    cmv_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    gross_margin_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    gross_margin_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}

class OrderItem(Base, IdMixin, TSMMixin):
    __tablename__ = "order_item"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), index=True)
    product_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("product.id"))  # null for ad-hoc lines
    name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    notes: Mapped[str | None] = mapped_column(Text)
    cmv_unit: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    cmv_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    margin_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    margin_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))

class OrderItemModifier(Base, IdMixin, TSMMixin):
    __tablename__ = "order_item_modifier"
    order_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("order_item.id"), index=True)
    group_name: Mapped[str] = mapped_column(String(120))
    name: Mapped[str] = mapped_column(String(160))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    option_id: Mapped[str | None] = mapped_column(String(36))  # flavor id for pizza fractions

class Payment(Base, IdMixin, TSMMixin):
    __tablename__ = "payment"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), index=True)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus), default=PaymentStatus.PENDING)

class OrderEvent(Base, IdMixin, TSMMixin):
    __tablename__ = "order_event"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), index=True)
    type: Mapped[str] = mapped_column(String(40))
    payload: Mapped[dict] = mapped_column(JSON)
