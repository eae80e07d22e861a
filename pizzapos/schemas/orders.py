from pydantic import BaseModel, Field
from typing import Optional, Literal, Any
from decimal import Decimal

OrderStatusLiteral = Literal["OPEN", "CONFIRMED", "PREPARING", "READY", "DISPATCHED", "DELIVERED", "CANCELED"]
OrderSourceLiteral = Literal["PDV", "MENU", "KITCHEN"]
PaymentMethodLiteral = Literal["PIX", "CASH", "CARD"]

class PizzaPart(BaseModel):
    flavor_name: str = ""
    fraction: Optional[str] = None  # "1/2"; empty means 1/len(parts)

class PizzaSelection(BaseModel):
    size_name: str = ""
    parts: list[PizzaPart] = Field(default_factory=list)

class ModifierIn(BaseModel):
    name: str
    group_name: str = "Options"
    quantity: Decimal = Decimal("1")
    price: Decimal = Decimal("0")
    option_id: Optional[str] = None

class OrderItemIn(BaseModel):
    product_id: str
    quantity: Decimal = Decimal("1")
    pizza: Optional[PizzaSelection] = None
    modifiers: list[ModifierIn] = Field(default_factory=list)
    notes: Optional[str] = None

class OrderIn(BaseModel):
    source: OrderSourceLiteral = "PDV"
    delivery_fee: Decimal = Decimal("0")

class QuoteIn(BaseModel):
    quantity: Decimal = Decimal("1")
    pizza: Optional[PizzaSelection] = None

class TransitionIn(BaseModel):
    to_status: OrderStatusLiteral
    reason: Optional[str] = None
    extra_payload: Optional[dict[str, Any]] = None

class CheckoutIn(BaseModel):
    payment_method: PaymentMethodLiteral = "PIX"
    payment_status: Literal["PAID", "PENDING"] = "PAID"
