# conftest.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pizzapos import models  # noqa: F401
from pizzapos.db import Base, get_db
from pizzapos.main import app
from pizzapos.models import (
    InventoryItem, OrderItem, PizzaFlavor, PizzaFlavorPrice, PizzaSize, PricingRule, Product,
    RecipeLine, Tenant,
)
from pizzapos.schemas.orders import OrderItemIn, PizzaPart, PizzaSelection
from pizzapos.services import orders as order_service


@pytest.fixture
def engine():
    # one shared connection so every session sees the same in-memory database
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    # no lifespan: tables come from the engine fixture, not the app's startup hook.
    # Server faults must come back as 500 responses instead of re-raising in the test.
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def selection(size, *parts):
    """selection("M", ("1/2", "X"), ("1/2", "Y"))"""
    return PizzaSelection(size_name=size, parts=[PizzaPart(fraction=f, flavor_name=n) for f, n in parts])


class Seed:
    """Small catalog builder; every helper commits so the data survives rollbacks under test."""

    def __init__(self, db):
        self.db = db

    def _add(self, *objs):
        self.db.add_all(objs)
        self.db.commit()
        return objs[0] if len(objs) == 1 else objs

    def tenant(self, name="Pizzaria Centro"):
        return self._add(Tenant(name=name))

    def item(self, tenant, name, unit_cost, quantity=100, unit="un", minimum=0):
        return self._add(InventoryItem(
            tenant_id=tenant.id, name=name, unit=unit, unit_cost=Decimal(str(unit_cost)),
            quantity=Decimal(str(quantity)), minimum=Decimal(str(minimum)),
        ))

    def product(self, tenant, name, price=0, **kw):
        return self._add(Product(tenant_id=tenant.id, name=name, base_price=Decimal(str(price)), **kw))

    def recipe(self, product, *lines):
        """lines: (InventoryItem | Product, quantity)"""
        rows = []
        for position, (target, qty) in enumerate(lines):
            rows.append(RecipeLine(
                product_id=product.id,
                position=position,
                inventory_item_id=target.id if isinstance(target, InventoryItem) else None,
                ingredient_product_id=target.id if isinstance(target, Product) else None,
                quantity=Decimal(str(qty)),
            ))
        self._add(*rows)
        return rows

    def pizza(self, tenant, name="Pizza", rule=PricingRule.LARGEST_FLAVOR, sizes=None, prices=None):
        """sizes: {"M": max_flavors}; prices: {"flavor": {"M": price}}"""
        product = self.product(tenant, name, is_pizza=True, pricing_rule=rule)
        size_rows = {
            s: PizzaSize(tenant_id=tenant.id, product_id=product.id, name=s, max_flavors=n)
            for s, n in (sizes or {"M": 2}).items()
        }
        self._add(*size_rows.values())
        for flavor_name, by_size in (prices or {}).items():
            flavor = self._add(PizzaFlavor(tenant_id=tenant.id, product_id=product.id, name=flavor_name))
            for size_name, price in by_size.items():
                self._add(PizzaFlavorPrice(
                    flavor_id=flavor.id, size_id=size_rows[size_name].id, price=Decimal(str(price)),
                ))
        return product

    def order(self, tenant, *lines, delivery_fee=0):
        """lines: (Product, quantity) or (Product, quantity, PizzaSelection)"""
        order = order_service.open_order(self.db, tenant.id, delivery_fee=delivery_fee)
        for line in lines:
            product, qty = line[0], line[1]
            pizza = line[2] if len(line) > 2 else None
            order_service.add_item(self.db, tenant.id, order.id,
                                   OrderItemIn(product_id=product.id, quantity=Decimal(str(qty)), pizza=pizza))
        return order

    def adhoc_line(self, order, name, total):
        return self._add(OrderItem(
            order_id=order.id, product_id=None, name=name, quantity=Decimal("1"),
            unit_price=Decimal(str(total)), total_price=Decimal(str(total)),
        ))


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def tenant(seed):
    return seed.tenant()
