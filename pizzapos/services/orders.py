"""
Order lifecycle.

Status changes go through ``transition_order``, which checks the move
against ``ALLOWED_TRANSITIONS`` and runs its side effects in the same unit
of work as the status write:

* ``OPEN -> CONFIRMED`` debits stock and computes CMV/margin.
* ``* -> CANCELED`` refunds PAID payments and returns outstanding stock.

Every successful change appends one ``STATUS_CHANGED`` event. The order row
is locked for the duration, so two concurrent confirms cannot both see OPEN.

The cart helpers (``open_order``, ``add_item``, ``remove_item``,
``checkout``) only touch OPEN orders.
"""
import logging
from datetime import date, datetime, time, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pizzapos.db import atomic
from pizzapos.errors import InvalidTransition, NotFound, ValidationError
from pizzapos.models.core import (
    MovementType, Order, OrderItem, OrderItemModifier, OrderSource, OrderStatus,
    Payment, PaymentMethod, PaymentStatus, Product,
)
from pizzapos.schemas.orders import OrderItemIn
from pizzapos.services.billing import money, recalc_order_totals, to_decimal
from pizzapos.services.ledger import apply_consumption
from pizzapos.services.pricing import load_pizza_menu, price_line
from pizzapos.util.audit import record_status_event

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.OPEN: [OrderStatus.CONFIRMED, OrderStatus.CANCELED],
    OrderStatus.CONFIRMED: [OrderStatus.PREPARING, OrderStatus.CANCELED],
    OrderStatus.PREPARING: [OrderStatus.READY, OrderStatus.CANCELED],
    OrderStatus.READY: [OrderStatus.DISPATCHED, OrderStatus.DELIVERED, OrderStatus.CANCELED],
    OrderStatus.DISPATCHED: [OrderStatus.DELIVERED, OrderStatus.CANCELED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELED: [],
}

# what the kitchen screen shows when no filter is given
KITCHEN_STATUSES = [OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DISPATCHED]


def assert_transition(from_status: OrderStatus, to_status: OrderStatus) -> None:
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, []):
        raise InvalidTransition(from_status, to_status)


def _status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"invalid status {value!r}")


def _lock_order(db: Session, order_id: str, tenant_id: str | None = None) -> Order:
    order = db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None or (tenant_id is not None and order.tenant_id != tenant_id):
        raise NotFound("order", order_id)
    return order


def transition_order(db: Session, order_id: str, to_status, actor_user_id: str | None = None,
                     reason: str | None = None, extra_payload: dict | None = None,
                     tenant_id: str | None = None) -> Order:
    to_status = _status(to_status)
    with atomic(db):
        order = _lock_order(db, order_id, tenant_id)
        from_status = order.status
        assert_transition(from_status, to_status)

        if to_status == OrderStatus.CANCELED:
            db.execute(
                update(Payment)
                .where(Payment.order_id == order_id, Payment.status == PaymentStatus.PAID)
                .values(status=PaymentStatus.REFUNDED)
                .execution_options(synchronize_session="evaluate")
            )
            apply_consumption(db, order_id, MovementType.IN)

        if from_status == OrderStatus.OPEN and to_status == OrderStatus.CONFIRMED:
            apply_consumption(db, order_id, MovementType.OUT)

        order.status = to_status
        db.flush()
        record_status_event(db, order, from_status, to_status, actor_user_id, reason, extra_payload)
        db.flush()

    logger.info("order %s: %s -> %s (actor=%s)", order_id, from_status.value, to_status.value, actor_user_id)
    return db.get(Order, order_id)


def get_order(db: Session, tenant_id: str, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None or order.tenant_id != tenant_id:
        raise NotFound("order", order_id)
    return order


def parse_statuses(raw: str | None, default=None) -> list[OrderStatus]:
    """Comma separated filter; unknown names are dropped."""
    if not raw:
        return list(default or [])
    known = {s.value for s in OrderStatus}
    return [OrderStatus(s) for s in (part.strip() for part in raw.split(",")) if s in known]


def _as_date(value, field_name: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"invalid {field_name} {value!r}: use YYYY-MM-DD")


def list_orders(db: Session, tenant_id: str, statuses=None, date_from=None, date_to=None,
                oldest_first: bool = False, limit: int = 100) -> list[Order]:
    """
    Tenant orders, optionally filtered.

    ``statuses`` of ``None`` means any status; an empty list matches nothing.
    ``date_from``/``date_to`` are whole UTC days, both inclusive.
    """
    start = _as_date(date_from, "dateFrom")
    end = _as_date(date_to, "dateTo")

    q = db.query(Order).filter(Order.tenant_id == tenant_id)
    if statuses is not None:
        q = q.filter(Order.status.in_([_status(s) for s in statuses]))
    if start is not None:
        q = q.filter(Order.created_at >= datetime.combine(start, time.min, tzinfo=timezone.utc))
    if end is not None:
        q = q.filter(Order.created_at <= datetime.combine(end, time.max, tzinfo=timezone.utc))

    order_by = Order.created_at.asc() if oldest_first else Order.created_at.desc()
    return q.order_by(order_by, Order.id.asc()).limit(limit).all()


def _open_order_for_update(db: Session, tenant_id: str, order_id: str) -> Order:
    order = _lock_order(db, order_id, tenant_id)
    if order.status != OrderStatus.OPEN:
        raise ValidationError(f"order {order_id} is not open")
    return order


def open_order(db: Session, tenant_id: str, source=OrderSource.PDV, delivery_fee=0) -> Order:
    fee = to_decimal(delivery_fee)
    if not fee.is_finite() or fee < 0:
        raise ValidationError("delivery fee must be a non-negative number")
    try:
        source = OrderSource(getattr(source, "value", source))
    except ValueError:
        raise ValidationError(f"invalid order source {source!r}")
    fee = money(fee)
    with atomic(db):
        order = Order(
            tenant_id=tenant_id,
            source=source,
            status=OrderStatus.OPEN,
            subtotal=money(0),
            delivery_fee=fee,
            total=fee,
        )
        db.add(order)
        db.flush()
        order_id = order.id
    return db.get(Order, order_id)


def add_item(db: Session, tenant_id: str, order_id: str, item: OrderItemIn) -> OrderItem:
    with atomic(db):
        order = _open_order_for_update(db, tenant_id, order_id)
        product = db.get(Product, item.product_id)
        if product is None or product.tenant_id != tenant_id:
            raise NotFound("product", item.product_id)

        menu = load_pizza_menu(db, product) if product.is_pizza else None
        pricing = price_line(product, item.quantity, item.pizza, menu)

        notes = item.notes or None
        if pricing.notes_suffix:
            notes = f"{notes} | {pricing.notes_suffix}" if notes else pricing.notes_suffix

        line = OrderItem(
            order_id=order.id,
            product_id=product.id,
            name=pricing.label,
            quantity=to_decimal(item.quantity),
            unit_price=pricing.unit_price,
            total_price=pricing.total_price,
            notes=notes,
        )
        db.add(line)
        db.flush()

        for pm in pricing.modifiers:
            db.add(OrderItemModifier(
                order_item_id=line.id, group_name=pm.group_name, name=pm.name,
                quantity=pm.quantity, price=pm.price, option_id=pm.option_id,
            ))
        for mod in item.modifiers:
            db.add(OrderItemModifier(
                order_item_id=line.id, group_name=mod.group_name or "Options", name=mod.name,
                quantity=to_decimal(mod.quantity), price=money(mod.price), option_id=mod.option_id,
            ))

        recalc_order_totals(db, order)
        line_id = line.id

    logger.info("order %s: added %s x %s", order_id, item.quantity, pricing.label)
    return db.get(OrderItem, line_id)


def remove_item(db: Session, tenant_id: str, order_id: str, order_item_id: str) -> Order:
    with atomic(db):
        order = _open_order_for_update(db, tenant_id, order_id)
        line = db.get(OrderItem, order_item_id)
        if line is None or line.order_id != order_id:
            raise NotFound("order item", order_item_id)
        db.query(OrderItemModifier).filter(OrderItemModifier.order_item_id == order_item_id).delete()
        db.delete(line)
        db.flush()
        recalc_order_totals(db, order)
    return db.get(Order, order_id)


def list_items(db: Session, order_id: str) -> list[OrderItem]:
    return (
        db.query(OrderItem)
          .filter(OrderItem.order_id == order_id)
          .order_by(OrderItem.created_at.asc(), OrderItem.id.asc())
          .all()
    )


def list_modifiers(db: Session, order_item_id: str) -> list[OrderItemModifier]:
    return (
        db.query(OrderItemModifier)
          .filter(OrderItemModifier.order_item_id == order_item_id)
          .order_by(OrderItemModifier.created_at.asc(), OrderItemModifier.id.asc())
          .all()
    )


def checkout(db: Session, tenant_id: str, order_id: str, payment_method, actor_user_id: str | None = None,
             payment_status=PaymentStatus.PAID) -> Order:
    """
    Record a payment for the order total.

    A PAID payment (counter sale) confirms the order in the same
    transaction. A PENDING payment (online menu, awaiting the PIX charge)
    leaves the order OPEN until it is confirmed separately.
    """
    try:
        method = PaymentMethod(getattr(payment_method, "value", payment_method))
    except ValueError:
        raise ValidationError(f"invalid payment method {payment_method!r}")
    try:
        pay_status = PaymentStatus(getattr(payment_status, "value", payment_status))
    except ValueError:
        pay_status = None
    if pay_status not in (PaymentStatus.PAID, PaymentStatus.PENDING):
        raise ValidationError(f"invalid payment status {payment_status!r}")

    with atomic(db):
        order = _open_order_for_update(db, tenant_id, order_id)
        db.add(Payment(order_id=order.id, method=method, amount=money(order.total), status=pay_status))
        db.flush()
        if pay_status == PaymentStatus.PENDING:
            logger.info("order %s: pending %s payment of %s", order_id, method.value, order.total)
            return db.get(Order, order_id)
        transition_order(
            db, order_id, OrderStatus.CONFIRMED,
            actor_user_id=actor_user_id,
            extra_payload={"paymentMethod": method.value},
            tenant_id=tenant_id,
        )
    return db.get(Order, order_id)
