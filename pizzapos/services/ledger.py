import logging
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from pizzapos.db import atomic
from pizzapos.errors import NotFound, ValidationError
from pizzapos.models.core import InventoryItem, InventoryMovement, MovementType, Order, OrderItem
from pizzapos.schemas.inventory import InventoryItemIn
from pizzapos.services.billing import percent, to_decimal
from pizzapos.services.recipes import Consumption, resolve_consumption

logger = logging.getLogger(__name__)

COST = Decimal("0.0001")
QTY = Decimal("0.001")


def _q4(x) -> Decimal:
    return to_decimal(x).quantize(COST)


def _apply_delta(db: Session, tenant_id: str, item_id: str, delta: Decimal) -> None:
    # single UPDATE ... SET quantity = quantity + :delta, never read-modify-write
    res = db.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item_id, InventoryItem.tenant_id == tenant_id)
        .values(quantity=InventoryItem.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFound("inventory item", item_id)
    loaded = db.identity_map.get(identity_key(InventoryItem, item_id))
    if loaded is not None:
        db.expire(loaded, ["quantity"])


def _debit_order(db: Session, order: Order) -> dict[str, Consumption]:
    """Resolve every line, write line CMV/margin and the order's rollup."""
    merged: dict[str, Consumption] = {}
    cache: dict = {}
    order_cmv = Decimal("0")

    lines = (
        db.query(OrderItem)
          .filter(OrderItem.order_id == order.id)
          .order_by(OrderItem.created_at.asc(), OrderItem.id.asc())
          .all()
    )
    for line in lines:
        if not line.product_id:
            continue
        line_consumed = resolve_consumption(db, order.tenant_id, line.product_id, line.quantity, cache)
        for item_id, c in line_consumed.items():
            merged.setdefault(item_id, Consumption()).add(c)

        cmv = sum((c.cost_total for c in line_consumed.values()), Decimal("0"))
        qty = to_decimal(line.quantity)
        revenue = to_decimal(line.total_price)
        line.cmv_total = _q4(cmv)
        line.cmv_unit = _q4(cmv / qty if qty > 0 else cmv)
        line.margin_value = _q4(revenue - cmv)
        line.margin_percent = percent(revenue - cmv, revenue)
        order_cmv += cmv

    revenue = to_decimal(order.total)
    order.cmv_total = _q4(order_cmv)
    order.gross_margin_value = _q4(revenue - order_cmv)
    order.gross_margin_percent = percent(revenue - order_cmv, revenue)
    return merged


def _outstanding_for_order(db: Session, order: Order) -> dict[str, Consumption]:
    """Stock taken by the order's OUT movements and not yet given back."""
    rows = (
        db.query(InventoryMovement.item_id, InventoryMovement.type, func.sum(InventoryMovement.quantity))
          .filter(InventoryMovement.ref_order_id == order.id,
                  InventoryMovement.type.in_([MovementType.OUT, MovementType.IN]))
          .group_by(InventoryMovement.item_id, InventoryMovement.type)
          .all()
    )
    net: dict[str, Decimal] = {}
    for item_id, mtype, qty in rows:
        sign = 1 if mtype == MovementType.OUT else -1
        net[item_id] = net.get(item_id, Decimal("0")) + sign * to_decimal(qty)
    # sums come back as floats on some backends; compare at stored precision
    net = {item_id: qty.quantize(QTY) for item_id, qty in net.items()}
    return {item_id: Consumption(quantity=qty) for item_id, qty in net.items() if qty > 0}


def apply_consumption(db: Session, order_id: str, direction: MovementType) -> dict[str, Consumption]:
    """
    Move the order's stock in ``direction``.

    OUT resolves each line's recipe, debits the merged consumption and
    stores line and order CMV/margin. IN credits back whatever the order's
    earlier OUT movements took and is a no-op when nothing is outstanding,
    so cancelling an order that was never confirmed (or reversing twice)
    cannot credit stock that was not debited.

    Runs as one unit: any failure leaves balances, movements and cost
    fields untouched.
    """
    if direction not in (MovementType.OUT, MovementType.IN):
        raise ValidationError(f"unsupported direction {direction}")

    with atomic(db):
        order = db.get(Order, order_id)
        if order is None:
            raise NotFound("order", order_id)

        if direction == MovementType.OUT:
            consumed = _debit_order(db, order)
            reason = f"Stock out for order {order_id}"
        else:
            consumed = _outstanding_for_order(db, order)
            reason = f"Stock returned for order {order_id}"

        # fixed item order keeps row locks acquired in the same sequence across orders
        for item_id in sorted(consumed):
            qty = consumed[item_id].quantity
            _apply_delta(db, order.tenant_id, item_id, -qty if direction == MovementType.OUT else qty)
            db.add(InventoryMovement(
                item_id=item_id,
                type=direction,
                quantity=qty,
                reason=reason,
                ref_order_id=order_id,
            ))
        db.flush()

    logger.info("order %s stock %s: %d items", order_id, direction.value, len(consumed))
    return consumed


def create_item(db: Session, tenant_id: str, body: InventoryItemIn) -> InventoryItem:
    with atomic(db):
        item = InventoryItem(tenant_id=tenant_id, **body.model_dump())
        db.add(item)
        db.flush()
        item_id = item.id
    return db.get(InventoryItem, item_id)


def record_movement(db: Session, tenant_id: str, item_id: str, type: MovementType, quantity,
                    reason: str | None = None, meta: dict | None = None) -> InventoryMovement:
    """
    Manual stock entry.

    IN adds ``quantity``, OUT subtracts it. ADJUSTMENT treats ``quantity``
    as the counted balance and records the signed difference.
    """
    qty = to_decimal(quantity)
    if not qty.is_finite() or qty < 0:
        raise ValidationError("quantity must be a non-negative number")
    if type != MovementType.ADJUSTMENT and qty == 0:
        raise ValidationError(f"{type.value} quantity must be greater than zero")

    with atomic(db):
        item = db.execute(
            select(InventoryItem)
            .where(InventoryItem.id == item_id, InventoryItem.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise NotFound("inventory item", item_id)

        if type == MovementType.ADJUSTMENT:
            delta = qty - to_decimal(item.quantity)
            moved = delta
        else:
            delta = qty if type == MovementType.IN else -qty
            moved = qty

        _apply_delta(db, tenant_id, item_id, delta)
        mv = InventoryMovement(item_id=item_id, type=type, quantity=moved, reason=reason, meta=meta)
        db.add(mv)
        db.flush()
        mv_id = mv.id

    logger.info("inventory item %s %s %s", item_id, type.value, moved)
    return db.get(InventoryMovement, mv_id)


def list_movements(db: Session, tenant_id: str, item_id: str, limit: int = 100) -> list[InventoryMovement]:
    item = db.get(InventoryItem, item_id)
    if item is None or item.tenant_id != tenant_id:
        raise NotFound("inventory item", item_id)
    return (
        db.query(InventoryMovement)
          .filter(InventoryMovement.item_id == item_id)
          .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
          .limit(limit)
          .all()
    )


def low_stock(db: Session, tenant_id: str) -> list[InventoryItem]:
    return (
        db.query(InventoryItem)
          .filter(InventoryItem.tenant_id == tenant_id, InventoryItem.quantity <= InventoryItem.minimum)
          .order_by(InventoryItem.name.asc())
          .all()
    )
