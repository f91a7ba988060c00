from datetime import date
from decimal import Decimal

import pytest

from models.product import Product
from models.product_branch_price import ProductBranchPrice
from models.stock_snapshot import StockSnapshot
from services.errors import InvalidPrice, ProductNotFound
from services.ledger import record_inbound
from services.pricing import update_price


def _stocked(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, sale_price=15,
                   date=date(2024, 1, 1))
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 5))


def test_branch_price_recomputes_that_snapshot_only(session, product, branch, make_branch):
    other = make_branch("Tienda")
    _stocked(session, product, branch)
    _stocked(session, product, other)

    result = update_price(session, product_id=product, branch_id=branch, unit_cost=20, sale_price=30)

    assert result["old_sale_price"] == Decimal("15")
    assert result["new_sale_price"] == Decimal("30")
    snap = session.get(StockSnapshot, (product, branch))
    assert snap.sale_price == Decimal("30")
    # con capas abiertas el costo sigue siendo FIFO
    assert snap.unit_cost == Decimal("10.6667")
    assert snap.margin_pct == Decimal("181.25")
    assert session.get(StockSnapshot, (product, other)).sale_price == Decimal("15")
    assert session.get(Product, product).sale_price == Decimal("15")


def test_branch_cost_is_used_when_there_are_no_layers(session, product, branch):
    update_price(session, product_id=product, branch_id=branch, unit_cost=20, sale_price=30)

    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("0")
    assert snap.unit_cost == Decimal("20")

    # una entrada sin costo toma el costo de referencia de la sucursal
    result = record_inbound(session, product_id=product, branch_id=branch, qty=5, date=date(2024, 1, 1))
    assert result["movement"]["unit_cost"] == Decimal("20")


def test_price_for_all_branches_updates_product_and_every_snapshot(session, product, make_branch):
    norte = make_branch("Norte")
    sur = make_branch("Sur")
    _stocked(session, product, norte)
    _stocked(session, product, sur)
    update_price(session, product_id=product, branch_id=sur, unit_cost=11, sale_price=18)

    result = update_price(session, product_id=product, unit_cost="9.5", sale_price=25)

    assert len(result["snapshots"]) == 2
    p = session.get(Product, product)
    assert (p.cost_price, p.sale_price) == (Decimal("9.5"), Decimal("25"))
    for b in (norte, sur):
        assert session.get(StockSnapshot, (product, b)).sale_price == Decimal("25")
        assert session.get(ProductBranchPrice, (product, b)).cost_price == Decimal("9.5")


def test_price_update_rejects_negative_and_unknown_product(session, product, branch):
    with pytest.raises(InvalidPrice):
        update_price(session, product_id=product, branch_id=branch, unit_cost=-1, sale_price=10)
    with pytest.raises(ProductNotFound):
        update_price(session, product_id=999, branch_id=branch, unit_cost=1, sale_price=10)
    assert session.query(ProductBranchPrice).count() == 0
