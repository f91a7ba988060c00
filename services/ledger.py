"""
Operaciones públicas del ledger de stock.

Cada función pública es una unidad de trabajo: toma los locks de los
(producto, sucursal) afectados, escribe, recalcula snapshots y hace commit.
Los flujos externos sólo tocan el stock a través de este módulo.
"""
from datetime import date as date_type
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy.orm import Session

from models.movement import MovementKind, SourceType, StockMovement
from schemas.events import ConversionLeg, StockEvent, parse_event
from services.aggregator import recompute_many, recompute_snapshot
from services.conversion import reverse_transfer
from services.fifo import FifoResult
from services.locks import ledger_write
from services.stock import (
    add_stock,
    find_production_movements,
    find_source_movements,
    remove_stock,
    reverse_movements,
)


def outbound_payload(mv: StockMovement, result: FifoResult) -> dict:
    return {
        "movement": mv.to_dict(),
        "consumed": [c.to_dict() for c in result.consumed],
        "cost_of_goods": result.cost_of_goods,
        "shortfall": result.shortfall,
    }


def record_inbound(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    qty,
    date: date_type,
    unit_cost=None,
    sale_price=None,
    source_type: Optional[str] = SourceType.ADJUSTMENT,
    source_id: Optional[int] = None,
    source_group_id: Optional[int] = None,
    note: Optional[str] = None,
) -> dict:
    with ledger_write(db, [(product_id, branch_id)]):
        mv = add_stock(
            db,
            product_id=product_id,
            branch_id=branch_id,
            qty=qty,
            date=date,
            unit_cost=unit_cost,
            sale_price=sale_price,
            source_type=source_type,
            source_id=source_id,
            source_group_id=source_group_id,
            note=note,
        )
        recompute_snapshot(db, product_id, branch_id)
        payload = {"movement": mv.to_dict()}
    return payload


def record_outbound(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    qty,
    date: date_type,
    allow_negative: bool = False,
    sale_price=None,
    source_type: Optional[str] = SourceType.ADJUSTMENT,
    source_id: Optional[int] = None,
    source_group_id: Optional[int] = None,
    note: Optional[str] = None,
) -> dict:
    """Salida FIFO. Devuelve el movimiento, las capas consumidas y el costo de venta."""
    with ledger_write(db, [(product_id, branch_id)]):
        mv, result = remove_stock(
            db,
            product_id=product_id,
            branch_id=branch_id,
            qty=qty,
            date=date,
            allow_negative=allow_negative,
            sale_price=sale_price,
            source_type=source_type,
            source_id=source_id,
            source_group_id=source_group_id,
            note=note,
        )
        recompute_snapshot(db, product_id, branch_id)
        payload = outbound_payload(mv, result)
    return payload


def _reversal_movements(
    db: Session,
    source_type: str,
    source_id: Optional[int],
    group_id: Optional[int],
) -> List[StockMovement]:
    if source_type == SourceType.PRODUCTION:
        # la producción se revierte completa: producto terminado y materias primas
        production_id = source_id if source_id is not None else group_id
        if production_id is None:
            raise ValueError("source_id o group_id requerido")
        return find_production_movements(db, production_id)
    return find_source_movements(db, source_type=source_type, source_id=source_id, group_id=group_id)


def reverse(
    db: Session,
    *,
    source_type: str,
    source_id: Optional[int] = None,
    group_id: Optional[int] = None,
) -> dict:
    """
    Borra los movimientos de una línea (source_id) o de toda una transacción
    (group_id) y devuelve a las capas exactamente lo consumido.

    - PRODUCTION: revierte la producción completa (salida de materias primas incluida).
    - TRANSFER_OUT / TRANSFER_IN: revierte las dos patas del unloading y su cabecera.
    """
    if source_type in (SourceType.TRANSFER_OUT, SourceType.TRANSFER_IN):
        transfer_id = source_id if source_id is not None else group_id
        if transfer_id is None:
            raise ValueError("source_id o group_id requerido")
        return reverse_transfer(db, transfer_id)

    movements = _reversal_movements(db, source_type, source_id, group_id)
    keys = {(m.product_id, m.branch_id) for m in movements}

    with ledger_write(db, keys):
        # releer ya con los locks tomados
        movements = _reversal_movements(db, source_type, source_id, group_id)
        count = len(movements)
        touched = reverse_movements(db, movements)
        recompute_many(db, touched)

    current_app.logger.info(
        "Reversa %s source_id=%s group_id=%s: %s movimiento(s)", source_type, source_id, group_id, count
    )
    return {"reversed": count, "keys": sorted(touched)}


def _apply_event(db: Session, event: StockEvent, *, allow_negative: bool = False) -> Tuple[StockMovement, Optional[FifoResult]]:
    """Aplica un evento sin unidad de trabajo propia (lo usan apply_event, rebuild y fix)."""
    transfer_id = event.transfer_id if isinstance(event, ConversionLeg) else None
    common = dict(
        product_id=event.product_id,
        branch_id=event.branch_id,
        qty=event.quantity,
        date=event.date,
        sale_price=event.sale_price,
        source_type=event.source_type,
        source_id=event.source_id,
        source_group_id=event.group_id,
        transfer_id=transfer_id,
        note=event.note,
    )
    if event.direction == MovementKind.IN:
        return add_stock(db, unit_cost=event.unit_cost, **common), None
    return remove_stock(db, allow_negative=allow_negative, **common)


def apply_event(db: Session, event, allow_negative: bool = False) -> dict:
    """Entrada única para los flujos externos: valida el evento y lo registra."""
    event = parse_event(event)
    with ledger_write(db, [event.key]):
        mv, result = _apply_event(db, event, allow_negative=allow_negative)
        recompute_snapshot(db, event.product_id, event.branch_id)
        if result is None:
            payload = {"movement": mv.to_dict()}
        else:
            payload = outbound_payload(mv, result)
    return payload
