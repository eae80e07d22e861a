from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pizzapos.db import get_db
from pizzapos.deps import current_actor, require_tenant
from pizzapos.models.core import Order, OrderEvent, Payment
from pizzapos.schemas.common import ErrorOut
from pizzapos.schemas.orders import CheckoutIn, OrderIn, OrderItemIn, TransitionIn
from pizzapos.services import orders as order_service
from pizzapos.services.billing import compute_bill

router = APIRouter(prefix="/orders", tags=["orders"])

ERRORS = {400: {"model": ErrorOut}, 404: {"model": ErrorOut}, 409: {"model": ErrorOut}}


def _num(x) -> float | None:
    return None if x is None else float(x)


def order_out(db: Session, o: Order) -> dict:
    items = []
    for line in order_service.list_items(db, o.id):
        items.append({
            "id": line.id,
            "product_id": line.product_id,
            "name": line.name,
            "quantity": _num(line.quantity),
            "unit_price": _num(line.unit_price),
            "total_price": _num(line.total_price),
            "notes": line.notes,
            "cmv_unit": _num(line.cmv_unit),
            "cmv_total": _num(line.cmv_total),
            "margin_value": _num(line.margin_value),
            "margin_percent": _num(line.margin_percent),
            "modifiers": [
                {"group_name": m.group_name, "name": m.name, "quantity": _num(m.quantity),
                 "price": _num(m.price), "option_id": m.option_id}
                for m in order_service.list_modifiers(db, line.id)
            ],
        })
    payments = db.query(Payment).filter(Payment.order_id == o.id).order_by(Payment.created_at.asc()).all()
    events = db.query(OrderEvent).filter(OrderEvent.order_id == o.id).order_by(OrderEvent.created_at.asc()).all()
    return {
        "id": o.id,
        "tenant_id": o.tenant_id,
        "source": o.source.value,
        "status": o.status.value,
        "subtotal": _num(o.subtotal),
        "delivery_fee": _num(o.delivery_fee),
        "total": _num(o.total),
        "cmv_total": _num(o.cmv_total),
        "gross_margin_value": _num(o.gross_margin_value),
        "gross_margin_percent": _num(o.gross_margin_percent),
        "totals": compute_bill(db, o),
        "items": items,
        "payments": [
            {"id": p.id, "method": p.method.value, "amount": _num(p.amount), "status": p.status.value}
            for p in payments
        ],
        "events": [{"type": e.type, "payload": e.payload} for e in events],
    }


@router.post("/", responses=ERRORS)
def open_order(body: OrderIn, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    o = order_service.open_order(db, tenant_id, source=body.source, delivery_fee=body.delivery_fee)
    return order_out(db, o)


@router.get("/", responses=ERRORS)
def list_orders(status: str | None = None,
                date_from: str | None = Query(default=None, alias="dateFrom"),
                date_to: str | None = Query(default=None, alias="dateTo"),
                db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    rows = order_service.list_orders(
        db, tenant_id,
        statuses=[status] if status else None,
        date_from=date_from,
        date_to=date_to,
    )
    return [
        {"id": o.id, "status": o.status.value, "source": o.source.value, "total": _num(o.total),
         "created_at": o.created_at}
        for o in rows
    ]


@router.get("/{order_id}", responses=ERRORS)
def get_order(order_id: str, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    return order_out(db, order_service.get_order(db, tenant_id, order_id))


@router.post("/{order_id}/items", responses=ERRORS)
def add_item(order_id: str, body: OrderItemIn, db: Session = Depends(get_db),
             tenant_id: str = Depends(require_tenant)):
    line = order_service.add_item(db, tenant_id, order_id, body)
    o = order_service.get_order(db, tenant_id, order_id)
    return {"item_id": line.id, "subtotal": _num(o.subtotal), "total": _num(o.total)}


@router.delete("/{order_id}/items/{order_item_id}", responses=ERRORS)
def remove_item(order_id: str, order_item_id: str, db: Session = Depends(get_db),
                tenant_id: str = Depends(require_tenant)):
    o = order_service.remove_item(db, tenant_id, order_id, order_item_id)
    return {"ok": True, "subtotal": _num(o.subtotal), "total": _num(o.total)}


@router.post("/{order_id}/checkout", responses=ERRORS)
def checkout(order_id: str, body: CheckoutIn, db: Session = Depends(get_db),
             tenant_id: str = Depends(require_tenant), actor: str | None = Depends(current_actor)):
    o = order_service.checkout(db, tenant_id, order_id, body.payment_method, actor_user_id=actor,
                               payment_status=body.payment_status)
    return order_out(db, o)


@router.patch("/{order_id}/status", responses=ERRORS)
def change_status(order_id: str, body: TransitionIn, db: Session = Depends(get_db),
                  tenant_id: str = Depends(require_tenant), actor: str | None = Depends(current_actor)):
    o = order_service.transition_order(
        db, order_id, body.to_status,
        actor_user_id=actor,
        reason=body.reason or "status_update",
        extra_payload=body.extra_payload,
        tenant_id=tenant_id,
    )
    return order_out(db, o)
