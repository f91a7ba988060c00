import itertools
from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.branch import Branch
from models.consignment import Consignment, ConsignmentItem, ConsignmentSale
from models.product import Product, ProductUnit
from models.production import Production, ProductionMaterial, ProductionStatus
from models.purchase import Purchase, PurchaseItem, PurchaseStatus
from models.sale import Sale, SaleItem, SaleStatus
from models.stock_opname import OpnameStatus, StockOpname


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_branch(session):
    seq = itertools.count(1)

    def _make(name=None, **kw):
        b = Branch(name=name or f"Sucursal {next(seq)}", **kw)
        session.add(b)
        session.commit()
        return b.id

    return _make


@pytest.fixture
def make_product(session):
    seq = itertools.count(1)

    def _make(name=None, unit=ProductUnit.PCS, density=None, cost_price=0, sale_price=0):
        n = next(seq)
        p = Product(
            name=name or f"Producto {n}",
            sku=f"SKU-{n:03d}",
            unit=unit,
            density_kg_per_liter=density,
            cost_price=cost_price,
            sale_price=sale_price,
        )
        session.add(p)
        session.commit()
        return p.id

    return _make


@pytest.fixture
def branch(make_branch):
    return make_branch("Bodega Central", is_warehouse=True)


@pytest.fixture
def product(make_product):
    return make_product("Detergente", cost_price=9, sale_price=15)


# -------------------------
# Orígenes (transacciones de los flujos externos)
# -------------------------
@pytest.fixture
def make_purchase(session):
    def _make(branch_id, on, items, status=PurchaseStatus.RECEIVED):
        """items: [(product_id, qty, unit_cost)]"""
        p = Purchase(branch_id=branch_id, purchase_date=on, status=status, supplier_name="Proveedor")
        for product_id, qty, cost in items:
            p.items.append(PurchaseItem(product_id=product_id, qty=Decimal(str(qty)), unit_cost=Decimal(str(cost))))
        session.add(p)
        session.commit()
        return p.id, [i.id for i in p.items]

    return _make


@pytest.fixture
def make_sale(session):
    def _make(branch_id, on, items, status=SaleStatus.BILLED):
        """items: [(product_id, qty, unit_price)]"""
        s = Sale(branch_id=branch_id, sale_date=on, status=status, customer_name="Cliente")
        total = Decimal("0")
        for product_id, qty, price in items:
            s.items.append(SaleItem(product_id=product_id, qty=Decimal(str(qty)), unit_price=Decimal(str(price))))
            total += Decimal(str(qty)) * Decimal(str(price))
        s.total = total
        session.add(s)
        session.commit()
        return s.id, [i.id for i in s.items]

    return _make


@pytest.fixture
def make_production(session):
    def _make(branch_id, on, product_id, qty, unit_cost, materials, status=ProductionStatus.POSTED):
        """materials: [(product_id, qty)]"""
        p = Production(
            branch_id=branch_id,
            product_id=product_id,
            production_date=on,
            qty=Decimal(str(qty)),
            unit_cost=Decimal(str(unit_cost)),
            status=status,
        )
        for mat_id, mat_qty in materials:
            p.materials.append(ProductionMaterial(product_id=mat_id, qty=Decimal(str(mat_qty))))
        session.add(p)
        session.commit()
        return p.id, [m.id for m in p.materials]

    return _make


@pytest.fixture
def make_opname(session):
    def _make(branch_id, product_id, on, system_qty, counted_qty, status=OpnameStatus.APPROVED):
        system_qty = Decimal(str(system_qty))
        counted_qty = Decimal(str(counted_qty))
        o = StockOpname(
            branch_id=branch_id,
            product_id=product_id,
            opname_date=on,
            system_qty=system_qty,
            counted_qty=counted_qty,
            difference=counted_qty - system_qty,
            status=status,
        )
        session.add(o)
        session.commit()
        return o.id

    return _make


@pytest.fixture
def make_consignment_sale(session):
    def _make(branch_id, product_id, on, qty, unit_price=20, item_id=None):
        """item_id explícito => venta reportada sin detalle de consignación."""
        if item_id is None:
            c = Consignment(branch_id=branch_id, consignment_date=on, store_name="Tienda")
            item = ConsignmentItem(product_id=product_id, qty_sent=Decimal(str(qty)), unit_price=Decimal(str(unit_price)))
            c.items.append(item)
            session.add(c)
            session.flush()
            item_id = item.id
        s = ConsignmentSale(consignment_item_id=item_id, sale_date=on, qty_sold=Decimal(str(qty)))
        session.add(s)
        session.commit()
        return s.id

    return _make
