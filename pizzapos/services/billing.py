from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from sqlalchemy import func
from sqlalchemy.orm import Session
from pizzapos.models.core import Order, OrderItem, Payment, PaymentStatus

CENT = Decimal("0.01")

def to_decimal(x) -> Decimal:
    # use string to avoid float binary artifacts
    if isinstance(x, Decimal):
        return x
    try:
        return Decimal(str(x if x is not None else 0))
    except InvalidOperation:
        return Decimal("NaN")

def money(x) -> Decimal:
    return to_decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)

def percent(part, whole) -> Decimal:
    """part / whole * 100, or 0 when there is no revenue to compare with."""
    whole = to_decimal(whole)
    if whole <= 0:
        return Decimal("0.00")
    return (to_decimal(part) / whole * 100).quantize(CENT, rounding=ROUND_HALF_UP)

def recalc_order_totals(db: Session, order: Order) -> Order:
    subtotal = (
        db.query(func.coalesce(func.sum(OrderItem.total_price), 0))
          .filter(OrderItem.order_id == order.id)
          .scalar()
    )
    order.subtotal = money(subtotal)
    order.total = money(order.subtotal + to_decimal(order.delivery_fee))
    db.flush()
    return order

def compute_bill(db: Session, order: Order) -> dict:
    paid = (
        db.query(func.coalesce(func.sum(Payment.amount), 0))
          .filter(Payment.order_id == order.id, Payment.status == PaymentStatus.PAID)
          .scalar()
    )
    total = money(order.total)
    return {
        "subtotal": float(money(order.subtotal)),
        "delivery_fee": float(money(order.delivery_fee)),
        "total": float(total),
        "paid": float(money(paid)),
        "due": float(money(total - money(paid))),
    }
