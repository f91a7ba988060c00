from datetime import date
from decimal import Decimal

import pytest

from models.conversion_transfer import ConversionKind, ConversionTransfer
from models.movement import SourceType, StockMovement
from models.product import Product, ProductUnit
from models.stock_snapshot import StockSnapshot
from services import conversion
from services.conversion import convert_quantity, reverse_transfer, transfer, transfer_batch
from services.errors import (
    ConversionNotSupported,
    DensityNotConfigured,
    DuplicateTransferPair,
    InsufficientStock,
    LayerInUse,
)
from services.ledger import record_inbound, record_outbound, reverse
from services.reservation import reserve

ON = date(2024, 3, 1)


@pytest.fixture
def curah(make_product):
    return make_product("Jabón curah", unit=ProductUnit.KG, density=Decimal("0.9"), cost_price=10)


@pytest.fixture
def kiloan(make_product):
    return make_product("Jabón kiloan", unit=ProductUnit.ML, density=Decimal("0.9"), cost_price=Decimal("0.012"))


@pytest.fixture
def stocked(session, curah, branch):
    record_inbound(session, product_id=curah, branch_id=branch, qty=20, unit_cost=10, date=date(2024, 1, 1))
    return curah


def test_mass_to_volume_formula(session, curah, kiloan):
    out, kind, density = convert_quantity(9, session.get(Product, curah), session.get(Product, kiloan))
    assert out == Decimal("10000")
    assert kind == ConversionKind.MASS_TO_VOLUME
    assert density == Decimal("0.9")


def test_volume_to_mass_formula(session, curah, kiloan):
    out, kind, _ = convert_quantity(10000, session.get(Product, kiloan), session.get(Product, curah))
    assert out == Decimal("9")
    assert kind == ConversionKind.VOLUME_TO_MASS


def test_round_trip_returns_original_quantity(session, curah, kiloan):
    src, tgt = session.get(Product, curah), session.get(Product, kiloan)
    ml, _, _ = convert_quantity("7.35", src, tgt)
    back, _, _ = convert_quantity(ml, tgt, src)
    assert abs(back - Decimal("7.35")) <= Decimal("0.001")


def test_same_unit_keeps_quantity(session, make_product):
    a = make_product(unit=ProductUnit.PCS)
    b = make_product(unit=ProductUnit.PCS)
    out, kind, density = convert_quantity(4, session.get(Product, a), session.get(Product, b))
    assert (out, kind, density) == (Decimal("4"), ConversionKind.SAME_UNIT, None)


def test_transfer_moves_stock_between_products(session, stocked, kiloan, branch):
    result = transfer(
        session, source_product_id=stocked, target_product_id=kiloan, branch_id=branch,
        date=ON, input_quantity=9,
    )

    assert result["output_quantity"] == Decimal("10000")
    assert result["cost_of_goods"] == Decimal("90")
    assert result["target_unit_cost"] == Decimal("0.012")

    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("11")
    assert session.get(StockSnapshot, (kiloan, branch)).current_stock == Decimal("10000")

    legs = session.query(StockMovement).filter_by(transfer_id=result["id"]).all()
    assert sorted(m.source_type for m in legs) == [SourceType.TRANSFER_IN, SourceType.TRANSFER_OUT]


def test_missing_density_blocks_transfer(session, make_product, kiloan, branch):
    dry = make_product("Polvo sin densidad", unit=ProductUnit.KG)
    record_inbound(session, product_id=dry, branch_id=branch, qty=5, unit_cost=1, date=date(2024, 1, 1))

    with pytest.raises(DensityNotConfigured) as exc:
        transfer(session, source_product_id=dry, target_product_id=kiloan, branch_id=branch,
                 date=ON, input_quantity=1)

    assert "Polvo sin densidad" in str(exc.value)
    assert session.query(ConversionTransfer).count() == 0
    assert session.get(StockSnapshot, (dry, branch)).current_stock == Decimal("5")


def test_unsupported_unit_pair(session, stocked, make_product, branch):
    pcs = make_product(unit=ProductUnit.PCS)
    with pytest.raises(ConversionNotSupported):
        transfer(session, source_product_id=stocked, target_product_id=pcs, branch_id=branch,
                 date=ON, input_quantity=1)
    with pytest.raises(ConversionNotSupported):
        transfer(session, source_product_id=stocked, target_product_id=stocked, branch_id=branch,
                 date=ON, input_quantity=1)


def test_transfer_respects_reservations(session, stocked, kiloan, branch):
    reserve(session, product_id=stocked, branch_id=branch, qty=15)

    with pytest.raises(InsufficientStock):
        transfer(session, source_product_id=stocked, target_product_id=kiloan, branch_id=branch,
                 date=ON, input_quantity=9)

    assert session.query(ConversionTransfer).count() == 0


def test_failed_inbound_leg_rolls_back_outbound(session, stocked, kiloan, branch, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("falla en la entrada")

    monkeypatch.setattr(conversion, "add_stock", boom)

    with pytest.raises(RuntimeError):
        transfer(session, source_product_id=stocked, target_product_id=kiloan, branch_id=branch,
                 date=ON, input_quantity=9)

    assert session.query(ConversionTransfer).count() == 0
    assert session.query(StockMovement).filter_by(source_type=SourceType.TRANSFER_OUT).count() == 0
    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("20")


def test_batch_rejects_duplicate_pair(session, stocked, kiloan, branch):
    items = [
        {"source_product_id": stocked, "target_product_id": kiloan, "input_quantity": 1},
        {"source_product_id": stocked, "target_product_id": kiloan, "input_quantity": 2},
    ]
    with pytest.raises(DuplicateTransferPair):
        transfer_batch(session, branch_id=branch, date=ON, items=items)

    assert session.query(ConversionTransfer).count() == 0


def test_batch_posts_all_items_together(session, stocked, kiloan, make_product, branch):
    other = make_product("Suavizante kiloan", unit=ProductUnit.ML)
    items = [
        {"source_product_id": stocked, "target_product_id": kiloan, "input_quantity": 4.5},
        {"source_product_id": stocked, "target_product_id": other, "input_quantity": 9},
    ]

    result = transfer_batch(session, branch_id=branch, date=ON, items=items)

    assert len({t["batch_id"] for t in result["transfers"]}) == 1
    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("6.5")
    assert session.get(StockSnapshot, (kiloan, branch)).current_stock == Decimal("5000")
    assert session.get(StockSnapshot, (other, branch)).current_stock == Decimal("10000")


def test_batch_is_atomic(session, stocked, kiloan, make_product, branch):
    other = make_product("Suavizante kiloan", unit=ProductUnit.ML)
    items = [
        {"source_product_id": stocked, "target_product_id": kiloan, "input_quantity": 9},
        {"source_product_id": stocked, "target_product_id": other, "input_quantity": 50},
    ]

    with pytest.raises(InsufficientStock):
        transfer_batch(session, branch_id=branch, date=ON, items=items)

    assert session.query(ConversionTransfer).count() == 0
    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("20")


def test_reverse_transfer_restores_both_products(session, stocked, kiloan, branch):
    t = transfer(session, source_product_id=stocked, target_product_id=kiloan, branch_id=branch,
                 date=ON, input_quantity=9)

    reverse_transfer(session, t["id"])

    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("20")
    assert session.get(StockSnapshot, (kiloan, branch)).current_stock == Decimal("0")
    assert session.query(ConversionTransfer).count() == 0


def test_reverse_transfer_after_target_was_sold(session, stocked, kiloan, branch):
    t = transfer(session, source_product_id=stocked, target_product_id=kiloan, branch_id=branch,
                 date=ON, input_quantity=9)
    record_outbound(session, product_id=kiloan, branch_id=branch, qty=500, date=ON)

    with pytest.raises(LayerInUse):
        reverse_transfer(session, t["id"])

    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("11")
    assert session.query(ConversionTransfer).count() == 1


@pytest.mark.parametrize("leg", [SourceType.TRANSFER_OUT, SourceType.TRANSFER_IN])
def test_reversing_one_leg_reverses_the_whole_transfer(session, stocked, kiloan, branch, leg):
    t = transfer(session, source_product_id=stocked, target_product_id=kiloan, branch_id=branch,
                 date=ON, input_quantity=9)

    result = reverse(session, source_type=leg, source_id=t["id"])

    assert result["reversed"] == 2
    assert session.query(StockMovement).filter(StockMovement.transfer_id.isnot(None)).count() == 0
    assert session.get(ConversionTransfer, t["id"]) is None
    assert session.get(StockSnapshot, (stocked, branch)).current_stock == Decimal("20")
    assert session.get(StockSnapshot, (kiloan, branch)).current_stock == Decimal("0")
