from datetime import date
from decimal import Decimal

import pytest

from models.movement import MovementConsumption, MovementKind, SourceType, StockMovement
from models.stock_snapshot import StockSnapshot
from services.errors import DuplicateSourceReference, InsufficientStock, InvalidQuantity, LayerInUse
from services.ledger import record_inbound, record_outbound, reverse


def _layers(session, product_id, branch_id):
    return (
        session.query(StockMovement)
        .filter_by(product_id=product_id, branch_id=branch_id, kind=MovementKind.IN)
        .order_by(StockMovement.date.asc(), StockMovement.id.asc())
        .all()
    )


def _remaining(session, product_id, branch_id):
    return [m.quantity_remaining for m in _layers(session, product_id, branch_id)]


def test_outbound_consumes_oldest_layers_first(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 5))

    result = record_outbound(session, product_id=product, branch_id=branch, qty=120, date=date(2024, 1, 10))

    assert result["cost_of_goods"] == Decimal("1240")
    assert [c["quantity"] for c in result["consumed"]] == [Decimal("100"), Decimal("20")]
    assert [c["subtotal"] for c in result["consumed"]] == [Decimal("1000"), Decimal("240")]
    assert _remaining(session, product, branch) == [Decimal("0"), Decimal("30")]


def test_small_outbound_touches_only_oldest_layer(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 5))

    result = record_outbound(session, product_id=product, branch_id=branch, qty=40, date=date(2024, 1, 10))

    assert len(result["consumed"]) == 1
    assert result["cost_of_goods"] == Decimal("400")
    assert _remaining(session, product, branch) == [Decimal("60"), Decimal("50")]


def test_layer_order_follows_date_not_insertion(session, product, branch):
    # la capa más nueva se registra primero
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=20, date=date(2024, 2, 1))
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=5, date=date(2024, 1, 1))

    result = record_outbound(session, product_id=product, branch_id=branch, qty=10, date=date(2024, 2, 2))

    assert result["cost_of_goods"] == Decimal("50")


def test_same_date_layers_break_ties_by_insertion(session, product, branch):
    first = record_inbound(session, product_id=product, branch_id=branch, qty=5, unit_cost=7, date=date(2024, 1, 1))
    record_inbound(session, product_id=product, branch_id=branch, qty=5, unit_cost=9, date=date(2024, 1, 1))

    result = record_outbound(session, product_id=product, branch_id=branch, qty=5, date=date(2024, 1, 1))

    assert result["consumed"][0]["layer_id"] == first["movement"]["id"]
    assert result["cost_of_goods"] == Decimal("35")


def test_insufficient_stock_rejects_and_leaves_ledger_untouched(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=10, date=date(2024, 1, 1))

    with pytest.raises(InsufficientStock) as exc:
        record_outbound(session, product_id=product, branch_id=branch, qty=15, date=date(2024, 1, 2))

    assert exc.value.shortfall == Decimal("5")
    assert exc.value.available == Decimal("10")
    assert session.query(StockMovement).filter_by(kind=MovementKind.OUT).count() == 0
    assert _remaining(session, product, branch) == [Decimal("10")]


def test_authorized_over_consumption_flags_negative(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))

    result = record_outbound(
        session, product_id=product, branch_id=branch, qty=120, date=date(2024, 1, 2), allow_negative=True
    )

    assert result["shortfall"] == Decimal("20")
    virtual = result["consumed"][-1]
    assert virtual["layer_id"] is None
    assert virtual["unit_cost"] == Decimal("10")
    assert result["cost_of_goods"] == Decimal("1200")

    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("-20")
    assert snap.has_negative is True


def test_conservation_holds_through_negative_and_refill(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))
    record_outbound(session, product_id=product, branch_id=branch, qty=120, date=date(2024, 1, 2), allow_negative=True)
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 3))
    record_outbound(session, product_id=product, branch_id=branch, qty=5, date=date(2024, 1, 4))

    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == snap.stock_in_total - snap.stock_out_total
    assert snap.current_stock == Decimal("25")
    assert snap.has_negative is False


def test_refill_after_negative_covers_the_shortfall(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))
    record_outbound(session, product_id=product, branch_id=branch, qty=120, date=date(2024, 1, 2),
                    allow_negative=True, source_type=SourceType.SALE, source_id=1)
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 3))

    result = record_outbound(session, product_id=product, branch_id=branch, qty=30, date=date(2024, 1, 4),
                             source_type=SourceType.SALE, source_id=2)

    assert result["cost_of_goods"] == Decimal("360")
    assert _remaining(session, product, branch) == [Decimal("0"), Decimal("0")]
    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("0")
    assert snap.stock_value == Decimal("0")
    assert snap.has_negative is False

    # la salida negativa ahora apunta a capas reales, valorizada al costo real
    first = session.query(StockMovement).filter_by(source_type=SourceType.SALE, source_id=1).one()
    assert first.quantity_uncovered == Decimal("0")
    assert first.total_cost == Decimal("1240")
    assert all(c.layer_id is not None for c in first.consumptions)


def test_partial_refill_leaves_remaining_shortfall(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=10, date=date(2024, 1, 1))
    record_outbound(session, product_id=product, branch_id=branch, qty=30, date=date(2024, 1, 2), allow_negative=True)
    record_inbound(session, product_id=product, branch_id=branch, qty=5, unit_cost=12, date=date(2024, 1, 3))

    assert _remaining(session, product, branch) == [Decimal("0"), Decimal("0")]
    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("-15")
    assert snap.stock_value == Decimal("0")
    assert snap.has_negative is True


def test_reverse_negative_sale_after_refill(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))
    record_outbound(session, product_id=product, branch_id=branch, qty=120, date=date(2024, 1, 2),
                    allow_negative=True, source_type=SourceType.SALE, source_id=1)
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 3))

    reverse(session, source_type=SourceType.SALE, source_id=1)

    assert _remaining(session, product, branch) == [Decimal("100"), Decimal("50")]
    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("150")
    assert snap.stock_value == Decimal("1600")


def test_invalid_quantity(session, product, branch):
    for qty in (0, -5, "abc"):
        with pytest.raises(InvalidQuantity):
            record_inbound(session, product_id=product, branch_id=branch, qty=qty, unit_cost=1, date=date(2024, 1, 1))
    with pytest.raises(InvalidQuantity):
        record_outbound(session, product_id=product, branch_id=branch, qty=0, date=date(2024, 1, 1))


def test_quantity_accepts_comma_decimal(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty="2,5", unit_cost=1, date=date(2024, 1, 1))
    assert _remaining(session, product, branch) == [Decimal("2.5")]


def test_duplicate_source_reference(session, product, branch):
    record_inbound(
        session, product_id=product, branch_id=branch, qty=1, unit_cost=1, date=date(2024, 1, 1),
        source_type=SourceType.PURCHASE, source_id=7,
    )
    with pytest.raises(DuplicateSourceReference):
        record_inbound(
            session, product_id=product, branch_id=branch, qty=1, unit_cost=1, date=date(2024, 1, 1),
            source_type=SourceType.PURCHASE, source_id=7,
        )


def test_reverse_outbound_restores_layers_exactly(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=100, unit_cost=10, date=date(2024, 1, 1))
    record_inbound(session, product_id=product, branch_id=branch, qty=50, unit_cost=12, date=date(2024, 1, 5))
    record_outbound(session, product_id=product, branch_id=branch, qty=30, date=date(2024, 1, 6),
                    source_type=SourceType.SALE, source_id=1)
    before = _remaining(session, product, branch)

    record_outbound(session, product_id=product, branch_id=branch, qty=100, date=date(2024, 1, 10),
                    source_type=SourceType.SALE, source_id=2)
    reverse(session, source_type=SourceType.SALE, source_id=2)

    assert _remaining(session, product, branch) == before
    assert session.query(StockMovement).filter_by(source_type=SourceType.SALE, source_id=2).count() == 0
    assert session.query(MovementConsumption).count() == 1
    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("120")


def test_reverse_virtual_shortfall(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=10, date=date(2024, 1, 1))
    record_outbound(session, product_id=product, branch_id=branch, qty=15, date=date(2024, 1, 2),
                    allow_negative=True, source_type=SourceType.SALE, source_id=3)

    reverse(session, source_type=SourceType.SALE, source_id=3)

    snap = session.get(StockSnapshot, (product, branch))
    assert snap.current_stock == Decimal("10")
    assert snap.has_negative is False


def test_reverse_whole_transaction_by_group(session, product, make_product, branch):
    other = make_product()
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=1, date=date(2024, 1, 1))
    record_inbound(session, product_id=other, branch_id=branch, qty=10, unit_cost=1, date=date(2024, 1, 1))
    for line, pid in ((11, product), (12, other)):
        record_outbound(session, product_id=pid, branch_id=branch, qty=4, date=date(2024, 1, 2),
                        source_type=SourceType.SALE, source_id=line, source_group_id=5)

    result = reverse(session, source_type=SourceType.SALE, group_id=5)

    assert result["reversed"] == 2
    assert session.get(StockSnapshot, (product, branch)).current_stock == Decimal("10")
    assert session.get(StockSnapshot, (other, branch)).current_stock == Decimal("10")


def test_reverse_consumed_inbound_is_rejected(session, product, branch):
    record_inbound(session, product_id=product, branch_id=branch, qty=10, unit_cost=10, date=date(2024, 1, 1),
                   source_type=SourceType.PURCHASE, source_id=1)
    record_outbound(session, product_id=product, branch_id=branch, qty=4, date=date(2024, 1, 2))

    with pytest.raises(LayerInUse):
        reverse(session, source_type=SourceType.PURCHASE, source_id=1)

    assert _remaining(session, product, branch) == [Decimal("6")]


def test_reverse_production_includes_material_lines(session, make_product, branch):
    flour = make_product("Harina")
    bread = make_product("Pan")
    record_inbound(session, product_id=flour, branch_id=branch, qty=50, unit_cost=2, date=date(2024, 1, 1))
    record_outbound(session, product_id=flour, branch_id=branch, qty=20, date=date(2024, 1, 2),
                    source_type=SourceType.PRODUCTION_MATERIAL, source_id=31, source_group_id=7)
    record_inbound(session, product_id=bread, branch_id=branch, qty=40, unit_cost=3, date=date(2024, 1, 2),
                   source_type=SourceType.PRODUCTION, source_id=7, source_group_id=7)

    result = reverse(session, source_type=SourceType.PRODUCTION, group_id=7)

    assert result["reversed"] == 2
    assert session.get(StockSnapshot, (flour, branch)).current_stock == Decimal("50")
    assert session.get(StockSnapshot, (bread, branch)).current_stock == Decimal("0")
    assert session.query(StockMovement).filter(StockMovement.source_group_id == 7).count() == 0


def test_reverse_production_is_blocked_once_output_was_sold(session, make_product, branch):
    flour = make_product("Harina")
    bread = make_product("Pan")
    record_inbound(session, product_id=flour, branch_id=branch, qty=50, unit_cost=2, date=date(2024, 1, 1))
    record_outbound(session, product_id=flour, branch_id=branch, qty=20, date=date(2024, 1, 2),
                    source_type=SourceType.PRODUCTION_MATERIAL, source_id=31, source_group_id=7)
    record_inbound(session, product_id=bread, branch_id=branch, qty=40, unit_cost=3, date=date(2024, 1, 2),
                   source_type=SourceType.PRODUCTION, source_id=7, source_group_id=7)
    record_outbound(session, product_id=bread, branch_id=branch, qty=5, date=date(2024, 1, 3))

    with pytest.raises(LayerInUse):
        reverse(session, source_type=SourceType.PRODUCTION, source_id=7)

    # nada se revirtió: la materia prima sigue consumida
    assert session.get(StockSnapshot, (flour, branch)).current_stock == Decimal("30")
