from datetime import date
from decimal import Decimal

import pytest

from models.movement import MovementKind, SourceType, StockMovement
from models.stock_adjustment import StockAdjustment
from models.stock_snapshot import StockSnapshot
from services.adjustment import adjust_to
from services.errors import InvalidQuantity
from services.ledger import record_inbound, record_outbound
from services.reconciliation import rebuild_all

ON = date(2024, 2, 1)


@pytest.fixture
def stocked(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=5, date=date(2024, 1, 1))
    return product


def test_adjust_up_adds_a_layer_at_current_cost(session, stocked, branch):
    result = adjust_to(session, product_id=stocked, branch_id=branch, new_qty=15, date=ON)

    assert result["changed"] is True
    assert result["previous_qty"] == Decimal("10")
    assert result["difference"] == Decimal("5")
    assert result["movement"]["kind"] == MovementKind.IN
    assert result["movement"]["unit_cost"] == Decimal("5")

    row = session.query(StockAdjustment).one()
    assert (row.previous_qty, row.new_qty, row.difference) == (Decimal("10"), Decimal("15"), Decimal("5"))
    assert row.note == "Ajuste manual de stock (+5.000)"
    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("15")


def test_adjust_down_consumes_fifo(session, stocked, branch):
    result = adjust_to(session, product_id=stocked, branch_id=branch, new_qty=4, date=ON, note="Merma")

    assert result["difference"] == Decimal("-6")
    assert result["cost_of_goods"] == Decimal("30")
    mv = session.query(StockMovement).filter_by(source_type=SourceType.ADJUSTMENT, kind=MovementKind.OUT).one()
    assert mv.kind == MovementKind.OUT
    assert mv.note == "Merma"
    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("4")


def test_adjust_within_tolerance_changes_nothing(session, stocked, branch):
    result = adjust_to(session, product_id=stocked, branch_id=branch, new_qty="10.0004", date=ON)

    assert result["changed"] is False
    assert result["difference"] == Decimal("0")
    assert session.query(StockAdjustment).count() == 0
    assert session.query(StockMovement).count() == 1


def test_adjust_from_negative_back_to_zero(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=2, unit_cost=5, date=date(2024, 1, 1))
    record_outbound(session, product_id=product, branch_id=branch, qty=5, date=date(2024, 1, 2), allow_negative=True)

    result = adjust_to(session, product_id=product, branch_id=branch, new_qty=0, date=ON)

    assert result["difference"] == Decimal("3")
    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("0")
    assert snap.has_negative is False


def test_negative_target_is_rejected(session, stocked, branch):
    with pytest.raises(InvalidQuantity):
        adjust_to(session, product_id=stocked, branch_id=branch, new_qty=-1)


def test_rebuild_replays_manual_adjustments(session, product, branch, make_purchase):
    make_purchase(branch, date(2024, 1, 1), [(product, 100, 10)])
    rebuild_all(session)
    adjust_to(session, product_id=product, branch_id=branch, new_qty=80, date=ON)
    adjust_to(session, product_id=product, branch_id=branch, new_qty=90, date=date(2024, 2, 2))
    live = sorted(s.as_row() for s in session.query(StockSnapshot).all())

    report = rebuild_all(session)

    assert report.created[SourceType.ADJUSTMENT] == 2
    assert session.get(StockSnapshot, (product, branch)).current_stock == Decimal("90")
    assert sorted(s.as_row() for s in session.query(StockSnapshot).all()) == live
