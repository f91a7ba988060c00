from datetime import date
from decimal import Decimal

import pytest

from models.movement import SourceType, StockMovement
from models.stock_snapshot import StockSnapshot
from services.errors import InsufficientAvailable, InsufficientStock, InvalidQuantity
from services.ledger import record_inbound, record_outbound
from services.reservation import commit, get_state, release, reserve


@pytest.fixture
def fifty(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=10, date=date(2024, 1, 1))
    return product


def test_reserve_reduces_available(session, fifty, branch):
    state = reserve(session, product_id=fifty, branch_id=branch, qty=20)
    assert state.physical == Decimal("50")
    assert state.reserved == Decimal("20")
    assert state.available == Decimal("30")


def test_reserve_beyond_available_reports_shortfall(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=20)

    with pytest.raises(InsufficientAvailable) as exc:
        reserve(session, product_id=fifty, branch_id=branch, qty=40)

    assert exc.value.shortfall == Decimal("10")
    assert exc.value.available == Decimal("30")
    assert get_state(session, fifty, branch).reserved == Decimal("20")


def test_release_floors_at_zero(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=5)
    state = release(session, product_id=fifty, branch_id=branch, qty=100)
    assert state.reserved == Decimal("0")
    assert state.available == Decimal("50")


def test_reserve_rejects_non_positive(session, fifty, branch):
    with pytest.raises(InvalidQuantity):
        reserve(session, product_id=fifty, branch_id=branch, qty=0)


def test_outbound_cannot_take_reserved_stock(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=20)

    with pytest.raises(InsufficientStock) as exc:
        record_outbound(session, product_id=fifty, branch_id=branch, qty=40, date=date(2024, 1, 2))

    assert exc.value.available == Decimal("30")


def test_commit_releases_and_consumes(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=20)

    result = commit(session, product_id=fifty, branch_id=branch, qty=20, date=date(2024, 1, 2),
                    source_id=99, source_group_id=9)

    assert result["released"] == Decimal("20")
    assert result["cost_of_goods"] == Decimal("200")
    assert result["reservation"]["reserved_quantity"] == Decimal("0")
    assert result["reservation"]["available_quantity"] == Decimal("30")
    mv = session.query(StockMovement).filter_by(source_type=SourceType.SALE, source_id=99).one()
    assert mv.source_group_id == 9


def test_commit_failure_keeps_reservation(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=20)

    with pytest.raises(InsufficientStock):
        commit(session, product_id=fifty, branch_id=branch, qty=60, date=date(2024, 1, 2))

    assert get_state(session, fifty, branch).reserved == Decimal("20")


def test_available_is_physical_minus_reserved_even_when_negative(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=20)
    record_outbound(session, product_id=fifty, branch_id=branch, qty=40, date=date(2024, 1, 2), allow_negative=True)

    state = get_state(session, fifty, branch)
    assert state.physical == Decimal("10")
    assert state.available == state.physical - state.reserved == Decimal("-10")


def test_reservations_do_not_change_physical_snapshot(session, fifty, branch):
    reserve(session, product_id=fifty, branch_id=branch, qty=20)
    assert session.get(StockSnapshot, (fifty, branch)).current_stock == Decimal("50")
