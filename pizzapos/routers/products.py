from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pizzapos.db import get_db
from pizzapos.deps import require_tenant
from pizzapos.schemas.common import ErrorOut
from pizzapos.schemas.inventory import RecipeIn
from pizzapos.schemas.orders import QuoteIn
from pizzapos.services.pricing import quote_line
from pizzapos.services.recipes import resolve_consumption, set_recipe

router = APIRouter(prefix="/products", tags=["products"])

ERRORS = {400: {"model": ErrorOut}, 404: {"model": ErrorOut}}


@router.post("/{product_id}/quote", responses=ERRORS)
def quote(product_id: str, body: QuoteIn, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    p = quote_line(db, tenant_id, product_id, body.quantity, body.pizza)
    return {
        "label": p.label,
        "unit_price": float(p.unit_price),
        "total_price": float(p.total_price),
        "notes_suffix": p.notes_suffix,
        "modifiers": [
            {"group_name": m.group_name, "name": m.name, "price": float(m.price), "option_id": m.option_id}
            for m in p.modifiers
        ],
    }


@router.put("/{product_id}/recipe", responses=ERRORS)
def replace_recipe(product_id: str, body: RecipeIn, db: Session = Depends(get_db),
                   tenant_id: str = Depends(require_tenant)):
    rows = set_recipe(db, tenant_id, product_id, body.lines)
    return {"ok": True, "lines": len(rows)}


@router.get("/{product_id}/consumption", responses=ERRORS)
def consumption(product_id: str, quantity: float = 1, db: Session = Depends(get_db),
                tenant_id: str = Depends(require_tenant)):
    consumed = resolve_consumption(db, tenant_id, product_id, quantity)
    return [
        {"inventory_item_id": item_id, "quantity": float(c.quantity), "cost_total": float(c.cost_total)}
        for item_id, c in sorted(consumed.items())
    ]
