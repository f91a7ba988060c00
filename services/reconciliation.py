"""
Reconciliación del ledger contra las transacciones de origen.

- rebuild_all: borra ledger + snapshots y rehace todo desde los orígenes
  (una sola transacción: si falla, queda el estado anterior).
- check_discrepancies / fix: diferencia mínima, sin borrar nada.
- delete_all_for: reset administrativo de un (producto, sucursal).
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from models.movement import MovementConsumption, MovementKind, StockMovement
from models.reservation import StockReservation
from models.stock_snapshot import StockSnapshot
from schemas.reports import BalanceDrift, DiscrepancyReport, FixReport, MissingEntry, RebuildReport
from services.aggregator import recompute_many, recompute_snapshot
from services.errors import ReconciliationDrift
from services.ledger import _apply_event
from services.locks import ledger_rebuild, ledger_write
from services.quantities import ZERO, to_decimal, to_signed_qty
from services.sources import REPLAY_SOURCE_TYPES, collect_events, find_event


def _wipe(db: Session) -> None:
    db.flush()
    db.query(MovementConsumption).delete(synchronize_session=False)
    db.query(StockMovement).delete(synchronize_session=False)
    db.query(StockSnapshot).delete(synchronize_session=False)
    db.expunge_all()


def rebuild_all(db: Session, dry_run: bool = False) -> RebuildReport:
    """
    Rehace el ledger desde cero en orden fijo de orígenes.
    dry_run=True sólo cuenta lo que se crearía (no toca el ledger).
    El replay permite stock negativo: una transacción histórica nunca se descarta.
    """
    events, skipped = collect_events(db)

    created: Dict[str, int] = {st: 0 for st in REPLAY_SOURCE_TYPES}
    for ev in events:
        created[ev.source_type] += 1

    if dry_run:
        return RebuildReport(dry_run=True, created=created, skipped=skipped)

    keys = {ev.key for ev in events}
    try:
        with ledger_rebuild(db):
            _wipe(db)
            for ev in events:
                _apply_event(db, ev, allow_negative=True)
            snaps = recompute_many(db, keys)
            negatives = [[s.product_id, s.branch_id] for s in snaps if s.has_negative]
    except Exception:
        current_app.logger.exception("Rebuild de stock falló; se mantiene el estado anterior")
        raise

    current_app.logger.info(
        "Rebuild de stock: %s movimiento(s), %s snapshot(s), %s omitido(s), %s negativo(s)",
        len(events), len(keys), len(skipped), len(negatives),
    )
    return RebuildReport(
        dry_run=False,
        created=created,
        skipped=skipped,
        snapshots=len(keys),
        negative_pairs=negatives,
    )


def _ledger_balances(db: Session) -> Dict[Tuple[int, int], Decimal]:
    signed = case(
        (StockMovement.kind == MovementKind.IN, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    rows = (
        db.query(StockMovement.product_id, StockMovement.branch_id, func.sum(signed))
        .group_by(StockMovement.product_id, StockMovement.branch_id)
        .all()
    )
    return {(p, b): to_signed_qty(total) for p, b, total in rows}


def _existing_sources(db: Session) -> Set[Tuple[str, int]]:
    rows = (
        db.query(StockMovement.source_type, StockMovement.source_id)
        .filter(StockMovement.source_id.isnot(None))
        .all()
    )
    return {(st, sid) for st, sid in rows}


def check_discrepancies(db: Session) -> DiscrepancyReport:
    """
    Sin borrar nada:
    - por tipo de origen, las transacciones sin movimiento en el ledger;
    - por (producto, sucursal), la diferencia entre el saldo del ledger y el snapshot.
    """
    events, skipped = collect_events(db)
    existing = _existing_sources(db)

    missing: Dict[str, List[MissingEntry]] = defaultdict(list)
    for ev in events:
        if (ev.source_type, ev.source_id) in existing:
            continue
        missing[ev.source_type].append(MissingEntry(
            source_type=ev.source_type,
            source_id=ev.source_id,
            group_id=ev.group_id,
            product_id=ev.product_id,
            branch_id=ev.branch_id,
            date=ev.date,
            direction=ev.direction,
            quantity=ev.quantity,
        ))

    balances = _ledger_balances(db)
    snapshots = {(s.product_id, s.branch_id): s for s in db.query(StockSnapshot).all()}

    drifts: List[BalanceDrift] = []
    for key in sorted(set(balances) | set(snapshots)):
        ledger_stock = balances.get(key, to_signed_qty(ZERO))
        snap = snapshots.get(key)
        snap_stock = to_signed_qty(snap.current_stock) if snap else None
        if snap_stock is None and ledger_stock == 0:
            continue
        if snap_stock is not None and snap_stock == ledger_stock:
            continue
        drifts.append(BalanceDrift(
            product_id=key[0],
            branch_id=key[1],
            ledger_stock=ledger_stock,
            snapshot_stock=snap_stock,
            delta=to_signed_qty(ledger_stock - (snap_stock or ZERO)),
        ))

    return DiscrepancyReport(
        missing={st: missing[st] for st in REPLAY_SOURCE_TYPES if missing.get(st)},
        drifts=drifts,
        skipped=skipped,
    )


def fix(db: Session, report: Optional[DiscrepancyReport] = None) -> FixReport:
    """
    Inserta sólo los movimientos faltantes del reporte y recalcula los
    snapshots afectados. Se puede correr varias veces: lo que ya existe no se
    vuelve a insertar.
    """
    if report is None:
        report = check_discrepancies(db)

    entries = [e for st in REPLAY_SOURCE_TYPES for e in report.missing.get(st, [])]
    keys = {(e.product_id, e.branch_id) for e in entries}
    keys |= {(d.product_id, d.branch_id) for d in report.drifts}

    out = FixReport()
    if not keys:
        return out

    with ledger_write(db, keys):
        existing = _existing_sources(db)
        for e in entries:
            if (e.source_type, e.source_id) in existing:
                out.already_present.append(e)
                continue
            ev = find_event(db, e.source_type, e.source_id)
            if ev is None:
                out.not_found.append(e)
                continue
            _apply_event(db, ev, allow_negative=True)
            existing.add((ev.source_type, ev.source_id))
            keys.add(ev.key)
            out.inserted.setdefault(ev.source_type, []).append(ev.source_id)
        recompute_many(db, keys)
        out.recomputed = len(keys)

    current_app.logger.info(
        "Fix de stock: %s insertado(s), %s ya presente(s), %s snapshot(s) recalculado(s)",
        out.total_inserted, len(out.already_present), out.recomputed,
    )
    return out


def verify(db: Session) -> DiscrepancyReport:
    """Como check_discrepancies, pero lanza ReconciliationDrift si el snapshot no cuadra."""
    report = check_discrepancies(db)
    if report.drifts:
        raise ReconciliationDrift([d.model_dump(mode="json") for d in report.drifts])
    return report


def delete_all_for(db: Session, product_id: int, branch_id: int) -> dict:
    """Reset administrativo: ledger, snapshot y reserva del par en cero."""
    with ledger_write(db, [(product_id, branch_id)]):
        movements = (
            db.query(StockMovement)
            .filter_by(product_id=product_id, branch_id=branch_id)
            .all()
        )
        ids = [m.id for m in movements]
        if ids:
            db.query(MovementConsumption).filter(
                MovementConsumption.outbound_id.in_(ids) | MovementConsumption.layer_id.in_(ids)
            ).delete(synchronize_session=False)
            db.query(StockMovement).filter(StockMovement.id.in_(ids)).delete(synchronize_session=False)
            db.expire_all()

        reservation = db.get(StockReservation, (product_id, branch_id))
        if reservation:
            db.delete(reservation)
        db.flush()

        snap = recompute_snapshot(db, product_id, branch_id)
        payload = {"deleted": len(ids), "snapshot": snap.to_dict()}

    current_app.logger.info(
        "Delete-all stock product=%s branch=%s: %s movimiento(s)", product_id, branch_id, len(ids)
    )
    return payload
