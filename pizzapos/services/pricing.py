"""
Line pricing for the cart.

``price_line`` is a pure function over already loaded catalog rows: it never
writes and only raises ``ValidationError``. ``quote_line`` is the database
facing entry point that loads the tenant's product and pizza menu first.

Pizza lines are split in equal fractions (1/1 up to 1/4), one flavor per
fraction. The unit price follows the product's pricing rule:

* ``LARGEST_FLAVOR``: price of the most expensive flavor at the chosen size.
* ``PROPORTIONAL``: each flavor contributes ``full_price / den``.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from pizzapos.errors import NotFound, ValidationError
from pizzapos.models.core import PizzaFlavor, PizzaFlavorPrice, PizzaSize, PricingRule, Product
from pizzapos.schemas.orders import PizzaSelection
from pizzapos.services.billing import money, to_decimal

FRACTION_RE = re.compile(r"^1/([1-4])$")
SUPPORTED_DENOMINATORS = (1, 2, 3, 4)


@dataclass
class PricedModifier:
    group_name: str
    name: str
    price: Decimal
    quantity: Decimal = Decimal("1")
    option_id: str | None = None


@dataclass
class LinePricing:
    unit_price: Decimal
    total_price: Decimal
    label: str
    notes_suffix: str | None = None
    modifiers: list[PricedModifier] = field(default_factory=list)


@dataclass
class PizzaMenu:
    """Active sizes/flavors of one pizza product, plus the (flavor, size) price grid."""
    sizes: list
    flavors: list
    prices: dict = field(default_factory=dict)


def _lower(v) -> str:
    return str(v or "").strip().lower()


def parse_fraction(value, total_parts: int) -> tuple[str, int]:
    raw = str(value or "").strip()
    if not raw:
        den = total_parts if total_parts > 1 else 1
        return f"1/{den}", den
    m = FRACTION_RE.match(raw)
    if not m:
        raise ValidationError(f"invalid fraction {raw!r}: use 1/2, 1/3 or 1/4")
    den = int(m.group(1))
    return f"1/{den}", den


def check_quantity(quantity) -> Decimal:
    q = to_decimal(quantity)
    if not q.is_finite() or q <= 0:
        raise ValidationError("quantity must be a positive number")
    return q


def load_pizza_menu(db: Session, product: Product) -> PizzaMenu:
    sizes = (
        db.query(PizzaSize)
          .filter(PizzaSize.product_id == product.id,
                  PizzaSize.tenant_id == product.tenant_id,
                  PizzaSize.active.is_(True))
          .all()
    )
    flavors = (
        db.query(PizzaFlavor)
          .filter(PizzaFlavor.product_id == product.id,
                  PizzaFlavor.tenant_id == product.tenant_id,
                  PizzaFlavor.active.is_(True))
          .all()
    )
    prices = {}
    flavor_ids = [f.id for f in flavors]
    if flavor_ids:
        for row in db.query(PizzaFlavorPrice).filter(PizzaFlavorPrice.flavor_id.in_(flavor_ids)).all():
            prices[(row.flavor_id, row.size_id)] = to_decimal(row.price)
    return PizzaMenu(sizes=sizes, flavors=flavors, prices=prices)


def price_line(product: Product, quantity, pizza: PizzaSelection | None = None,
               menu: PizzaMenu | None = None) -> LinePricing:
    q = check_quantity(quantity)
    if not product.is_pizza:
        unit_price = money(product.base_price)
        return LinePricing(unit_price=unit_price, total_price=money(unit_price * q), label=product.name)
    return _price_pizza(product, q, pizza, menu or PizzaMenu(sizes=[], flavors=[]))


def _price_pizza(product: Product, q: Decimal, pizza: PizzaSelection | None, menu: PizzaMenu) -> LinePricing:
    if pizza is None:
        raise ValidationError("pizza product requires a size and flavor selection")

    size_name = (pizza.size_name or "").strip()
    if not size_name:
        raise ValidationError("pizza size is required")
    size = next((s for s in menu.sizes if _lower(s.name) == _lower(size_name)), None)
    if size is None:
        raise ValidationError(f"size {size_name!r} does not exist for {product.name}")

    parts = []
    for p in pizza.parts:
        flavor_name = (p.flavor_name or "").strip()
        if not flavor_name:
            raise ValidationError("flavor name is required")
        parts.append((flavor_name, *parse_fraction(p.fraction, len(pizza.parts))))
    den = _check_parts(parts, size.max_flavors)

    priced = []
    for flavor_name, fraction, _ in parts:
        flavor = next((f for f in menu.flavors if _lower(f.name) == _lower(flavor_name)), None)
        if flavor is None:
            raise ValidationError(f"unknown flavor: {flavor_name}")
        full_price = menu.prices.get((flavor.id, size.id))
        if full_price is None:
            raise ValidationError(f"price not configured for flavor {flavor.name} at size {size.name}")
        priced.append((flavor, fraction, to_decimal(full_price)))

    if product.pricing_rule == PricingRule.PROPORTIONAL:
        unit_price = sum((full / den for _, _, full in priced), Decimal("0"))
    else:
        unit_price = max(full for _, _, full in priced)
    unit_price = money(unit_price)

    if den > 1:
        flavors_text = " | ".join(f"{fraction} {flavor.name}" for flavor, fraction, _ in priced)
    else:
        flavors_text = priced[0][0].name
    modifiers = [
        PricedModifier(
            group_name=f"Pizza {size.name}",
            name=f"{fraction} {flavor.name}",
            price=money(full),
            option_id=flavor.id,
        )
        for flavor, fraction, full in priced
    ]
    return LinePricing(
        unit_price=unit_price,
        total_price=money(unit_price * q),
        label=f"{product.name} ({size.name})",
        notes_suffix=f"Pizza {size.name} ({flavors_text})",
        modifiers=modifiers,
    )


def _check_parts(parts, max_flavors) -> int:
    if not parts:
        raise ValidationError("flavor selection is required for pizza")
    dens = {den for _, _, den in parts}
    if len(dens) > 1:
        raise ValidationError("all fractions must be equal")
    den = dens.pop()
    if den not in SUPPORTED_DENOMINATORS:
        raise ValidationError(f"unsupported fraction 1/{den}")
    if len(parts) != den:
        raise ValidationError(f"for 1/{den}, select exactly {den} flavors")
    if den > int(max_flavors or 1):
        raise ValidationError(f"{den} flavors exceed the {max_flavors} allowed for this size")
    return den


def quote_line(db: Session, tenant_id: str, product_id: str, quantity,
               pizza: PizzaSelection | None = None) -> LinePricing:
    product = db.get(Product, product_id)
    if product is None or product.tenant_id != tenant_id:
        raise NotFound("product", product_id)
    menu = load_pizza_menu(db, product) if product.is_pizza else None
    return price_line(product, quantity, pizza, menu)
