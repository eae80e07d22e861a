from pydantic import BaseModel, Field
from typing import Optional, Literal, Any
from decimal import Decimal

MovementTypeLiteral = Literal["IN", "OUT", "ADJUSTMENT"]

class InventoryItemIn(BaseModel):
    name: str
    unit: str
    quantity: Decimal
    minimum: Decimal
    unit_cost: Decimal = Decimal("0")

class MovementIn(BaseModel):
    item_id: str
    type: MovementTypeLiteral = "IN"
    quantity: Decimal
    reason: Optional[str] = None
    meta: Optional[dict[str, Any]] = None

class RecipeLineIn(BaseModel):
    inventory_item_id: Optional[str] = None
    ingredient_product_id: Optional[str] = None
    quantity: Decimal

class RecipeIn(BaseModel):
    lines: list[RecipeLineIn] = Field(default_factory=list)
