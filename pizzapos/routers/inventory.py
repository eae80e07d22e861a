from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pizzapos.db import get_db
from pizzapos.deps import require_tenant
from pizzapos.models.core import InventoryItem, MovementType
from pizzapos.schemas.common import ErrorOut
from pizzapos.schemas.inventory import InventoryItemIn, MovementIn
from pizzapos.services import ledger

router = APIRouter(prefix="/inventory", tags=["inventory"])

ERRORS = {400: {"model": ErrorOut}, 404: {"model": ErrorOut}}


def _item_out(i: InventoryItem) -> dict:
    return {
        "id": i.id,
        "name": i.name,
        "unit": i.unit,
        "quantity": float(i.quantity or 0),
        "unit_cost": float(i.unit_cost or 0),
        "minimum": float(i.minimum or 0),
    }


@router.get("/items")
def list_items(db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    rows = db.query(InventoryItem).filter(InventoryItem.tenant_id == tenant_id).order_by(InventoryItem.name.asc()).all()
    return [_item_out(i) for i in rows]


@router.post("/items", status_code=201)
def add_item(body: InventoryItemIn, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    return _item_out(ledger.create_item(db, tenant_id, body))


@router.post("/movements", status_code=201, responses=ERRORS)
def add_movement(body: MovementIn, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    mv = ledger.record_movement(
        db, tenant_id, body.item_id, MovementType(body.type), body.quantity,
        reason=body.reason, meta=body.meta,
    )
    return {"id": mv.id, "item_id": mv.item_id, "type": mv.type.value, "quantity": float(mv.quantity),
            "reason": mv.reason}


@router.get("/items/{item_id}/movements", responses=ERRORS)
def list_movements(item_id: str, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    return [
        {"id": m.id, "type": m.type.value, "quantity": float(m.quantity), "reason": m.reason,
         "ref_order_id": m.ref_order_id, "created_at": m.created_at}
        for m in ledger.list_movements(db, tenant_id, item_id)
    ]


@router.get("/low_stock")
def low_stock(db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    return [
        {"item_id": i.id, "name": i.name, "quantity": float(i.quantity or 0), "minimum": float(i.minimum or 0)}
        for i in ledger.low_stock(db, tenant_id)
    ]
