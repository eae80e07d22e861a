from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pizzapos.db import get_db
from pizzapos.deps import current_actor, require_tenant
from pizzapos.routers.orders import ERRORS, order_out
from pizzapos.schemas.orders import TransitionIn
from pizzapos.services import orders as order_service

router = APIRouter(prefix="/kitchen", tags=["kitchen"])


@router.get("/orders")
def queue(statuses: str | None = None, db: Session = Depends(get_db), tenant_id: str = Depends(require_tenant)):
    """Oldest first, with items and modifiers in the order they were added."""
    wanted = order_service.parse_statuses(statuses, default=order_service.KITCHEN_STATUSES)
    rows = order_service.list_orders(db, tenant_id, statuses=wanted, oldest_first=True, limit=120)
    return [order_out(db, o) for o in rows]


@router.patch("/orders/{order_id}/status", responses=ERRORS)
def change_status(order_id: str, body: TransitionIn, db: Session = Depends(get_db),
                  tenant_id: str = Depends(require_tenant), actor: str | None = Depends(current_actor)):
    o = order_service.transition_order(
        db, order_id, body.to_status,
        actor_user_id=actor,
        reason=body.reason or "kitchen_update",
        extra_payload=body.extra_payload,
        tenant_id=tenant_id,
    )
    return order_out(db, o)
