from sqlalchemy.orm import Session
from pizzapos.models.core import Order, OrderEvent, OrderStatus

STATUS_CHANGED = "STATUS_CHANGED"

def record_status_event(db: Session, order: Order, from_status: OrderStatus, to_status: OrderStatus,
                        actor_user_id: str | None = None, reason: str | None = None,
                        extra: dict | None = None) -> OrderEvent:
    payload = {
        "from": from_status.value,
        "to": to_status.value,
        "actorUserId": actor_user_id,
        "reason": reason,
        **(extra or {}),
    }
    entry = OrderEvent(order_id=order.id, type=STATUS_CHANGED, payload=payload)
    db.add(entry)
    return entry
