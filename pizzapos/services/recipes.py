"""
Bill of materials expansion.

A product's recipe lines point either at a raw inventory item or at another
product (an intermediate such as dough or sauce). ``resolve_consumption``
walks that graph depth first and flattens it into the raw inventory items
consumed, with their cost at the items' current unit cost.

The walk keeps its own frame stack instead of recursing, so very deep
recipes are bounded by memory rather than by the interpreter's recursion
limit. Products on the current path are tracked in ``on_stack``; meeting one
again means the recipe graph has a cycle and the whole resolution fails.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from pizzapos.db import atomic
from pizzapos.errors import CycleDetected, NotFound, ValidationError
from pizzapos.models.core import InventoryItem, Product, RecipeLine
from pizzapos.schemas.inventory import RecipeLineIn
from pizzapos.services.billing import to_decimal

logger = logging.getLogger(__name__)


@dataclass
class Consumption:
    quantity: Decimal = Decimal("0")
    cost_total: Decimal = Decimal("0")

    def add(self, other: "Consumption") -> None:
        self.quantity += other.quantity
        self.cost_total += other.cost_total


@dataclass(frozen=True)
class _Line:
    inventory_item_id: str | None
    ingredient_product_id: str | None
    quantity: Decimal
    unit_cost: Decimal


def _positive(x: Decimal) -> bool:
    return x.is_finite() and x > 0


def _load_recipe(db: Session, tenant_id: str, product_id: str, cache: dict) -> list[_Line]:
    recipe = cache.get(product_id)
    if recipe is not None:
        return recipe

    product = db.get(Product, product_id)
    if product is None or product.tenant_id != tenant_id:
        raise NotFound("product", product_id)

    rows = (
        db.query(RecipeLine, InventoryItem)
          .outerjoin(InventoryItem, InventoryItem.id == RecipeLine.inventory_item_id)
          .filter(RecipeLine.product_id == product_id)
          .order_by(RecipeLine.position.asc(), RecipeLine.id.asc())
          .all()
    )
    recipe = []
    for line, item in rows:
        if line.inventory_item_id and (item is None or item.tenant_id != tenant_id):
            raise NotFound("inventory item", line.inventory_item_id)
        recipe.append(_Line(
            inventory_item_id=line.inventory_item_id,
            ingredient_product_id=line.ingredient_product_id,
            quantity=to_decimal(line.quantity),
            unit_cost=to_decimal(item.unit_cost) if item is not None else Decimal("0"),
        ))
    cache[product_id] = recipe
    return recipe


def resolve_consumption(db: Session, tenant_id: str, product_id: str, multiplier,
                        cache: dict | None = None) -> dict[str, Consumption]:
    """
    Flatten ``product_id``'s recipe, scaled by ``multiplier``.

    Returns ``{inventory_item_id: Consumption}``. A product without recipe
    lines consumes nothing. Non-finite or non-positive multipliers and line
    quantities are skipped, which tolerates dirty recipe rows.

    ``cache`` holds recipe lookups for the duration of one pass and may be
    shared by the caller across several lines of the same order.

    Raises ``CycleDetected`` when a product is reached again while it is
    still being expanded, and ``NotFound`` when a product or inventory item
    is missing or belongs to another tenant.
    """
    consumed: dict[str, Consumption] = {}
    m = to_decimal(multiplier)
    if not product_id or not _positive(m):
        return consumed
    if cache is None:
        cache = {}

    path = [product_id]
    on_stack = {product_id}
    frames = [(product_id, iter(_load_recipe(db, tenant_id, product_id, cache)), m)]
    while frames:
        current, lines, mult = frames[-1]
        line = next(lines, None)
        if line is None:
            frames.pop()
            on_stack.discard(current)
            path.pop()
            continue

        qty = line.quantity * mult
        if not _positive(qty):
            continue

        if line.inventory_item_id:
            c = consumed.setdefault(line.inventory_item_id, Consumption())
            c.add(Consumption(quantity=qty, cost_total=qty * line.unit_cost))
            continue

        child = line.ingredient_product_id
        if not child:
            continue
        if child in on_stack:
            raise CycleDetected(path + [child])
        frames.append((child, iter(_load_recipe(db, tenant_id, child, cache)), qty))
        on_stack.add(child)
        path.append(child)

    return consumed


def set_recipe(db: Session, tenant_id: str, product_id: str, lines: list[RecipeLineIn]) -> list[RecipeLine]:
    """Replace a product's recipe. Cycles are only caught when the recipe is consumed."""
    with atomic(db):
        product = db.get(Product, product_id)
        if product is None or product.tenant_id != tenant_id:
            raise NotFound("product", product_id)

        rows = []
        for position, line in enumerate(lines):
            if bool(line.inventory_item_id) == bool(line.ingredient_product_id):
                raise ValidationError("recipe line must reference exactly one inventory item or product")
            qty = to_decimal(line.quantity)
            if not _positive(qty):
                raise ValidationError("recipe line quantity must be a positive number")
            if line.inventory_item_id:
                item = db.get(InventoryItem, line.inventory_item_id)
                if item is None or item.tenant_id != tenant_id:
                    raise NotFound("inventory item", line.inventory_item_id)
            else:
                ingredient = db.get(Product, line.ingredient_product_id)
                if ingredient is None or ingredient.tenant_id != tenant_id:
                    raise NotFound("product", line.ingredient_product_id)
            rows.append(RecipeLine(
                product_id=product_id,
                position=position,
                inventory_item_id=line.inventory_item_id,
                ingredient_product_id=line.ingredient_product_id,
                quantity=qty,
            ))

        db.query(RecipeLine).filter(RecipeLine.product_id == product_id).delete()
        db.add_all(rows)
        db.flush()
    logger.info("recipe for product %s replaced with %d lines", product_id, len(rows))
    return rows
