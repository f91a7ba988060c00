"""
Reservas: stock comprometido por ventas/transacciones en borrador.
disponible = físico - reservado (puede ser negativo si el físico bajó después).
"""
from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from models.movement import SourceType
from models.reservation import StockReservation
from services.aggregator import recompute_snapshot
from services.errors import InsufficientAvailable, InvalidQuantity
from services.ledger import outbound_payload
from services.locks import ledger_write
from services.quantities import ZERO, to_decimal, to_qty, to_signed_qty
from services.stock import ledger_balance, remove_stock


@dataclass
class ReservationState:
    product_id: int
    branch_id: int
    physical: Decimal
    reserved: Decimal

    @property
    def available(self) -> Decimal:
        return to_signed_qty(self.physical - self.reserved)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "physical_stock": self.physical,
            "reserved_quantity": self.reserved,
            "available_quantity": self.available,
        }


def _reservation(db: Session, product_id: int, branch_id: int) -> StockReservation:
    r = db.get(StockReservation, (product_id, branch_id))
    if not r:
        r = StockReservation(product_id=product_id, branch_id=branch_id, reserved_qty=ZERO)
        db.add(r)
        db.flush()
    return r


def get_state(db: Session, product_id: int, branch_id: int) -> ReservationState:
    r = db.get(StockReservation, (product_id, branch_id))
    return ReservationState(
        product_id=product_id,
        branch_id=branch_id,
        physical=ledger_balance(db, product_id, branch_id),
        reserved=to_signed_qty(r.reserved_qty) if r else to_signed_qty(ZERO),
    )


def _positive(qty) -> Decimal:
    q = to_qty(qty)
    if q <= 0:
        raise InvalidQuantity(qty)
    return q


def _release(db: Session, product_id: int, branch_id: int, q: Decimal) -> Decimal:
    r = _reservation(db, product_id, branch_id)
    current = to_decimal(r.reserved_qty)
    released = min(current, q)
    r.reserved_qty = to_signed_qty(current - released)
    db.flush()
    return released


def reserve(db: Session, *, product_id: int, branch_id: int, qty) -> ReservationState:
    q = _positive(qty)
    with ledger_write(db, [(product_id, branch_id)]):
        state = get_state(db, product_id, branch_id)
        if q > state.available:
            raise InsufficientAvailable(
                product_id=product_id, branch_id=branch_id, requested=q, available=state.available
            )
        r = _reservation(db, product_id, branch_id)
        r.reserved_qty = to_signed_qty(to_decimal(r.reserved_qty) + q)
        db.flush()
        state = get_state(db, product_id, branch_id)
    return state


def release(db: Session, *, product_id: int, branch_id: int, qty) -> ReservationState:
    """Libera reserva; nunca baja de cero."""
    q = _positive(qty)
    with ledger_write(db, [(product_id, branch_id)]):
        _release(db, product_id, branch_id, q)
        state = get_state(db, product_id, branch_id)
    return state


def commit(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    qty,
    date: date_type,
    sale_price=None,
    source_type: Optional[str] = SourceType.SALE,
    source_id: Optional[int] = None,
    source_group_id: Optional[int] = None,
    note: Optional[str] = None,
) -> dict:
    """
    Una línea en borrador pasa a movimiento real:
    libera la reserva y registra la salida FIFO, en la misma unidad de trabajo.
    """
    q = _positive(qty)
    with ledger_write(db, [(product_id, branch_id)]):
        released = _release(db, product_id, branch_id, q)
        mv, result = remove_stock(
            db,
            product_id=product_id,
            branch_id=branch_id,
            qty=q,
            date=date,
            sale_price=sale_price,
            source_type=source_type,
            source_id=source_id,
            source_group_id=source_group_id,
            note=note,
        )
        recompute_snapshot(db, product_id, branch_id)
        payload = outbound_payload(mv, result)
        payload["released"] = released
        payload["reservation"] = get_state(db, product_id, branch_id).to_dict()
    return payload
