"""
Ajuste manual de stock a un valor absoluto.

Se calcula la diferencia contra el saldo del ledger y se registra como una
entrada o salida. Cada ajuste deja un StockAdjustment como origen, así el
rebuild lo vuelve a aplicar.
"""
from datetime import date as date_type
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy.orm import Session

from models.stock_adjustment import StockAdjustment
from schemas.events import parse_event
from services.aggregator import recompute_snapshot
from services.errors import InvalidQuantity
from services.ledger import _apply_event, outbound_payload
from services.locks import ledger_write
from services.quantities import QTY, to_cost, to_decimal, to_qty, to_signed_qty
from services.stock import current_cost_basis, get_product, ledger_balance


def adjust_to(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    new_qty,
    date: Optional[date_type] = None,
    note: Optional[str] = None,
    unit_cost=None,
) -> dict:
    """
    Lleva el stock de (producto, sucursal) a new_qty.
    Diferencia menor a 0.001 => no hay cambio y no se registra nada.
    """
    if new_qty is None or to_decimal(new_qty) < 0:
        raise InvalidQuantity(new_qty)
    target = to_qty(new_qty)
    product = get_product(db, product_id)
    on = date or date_type.today()

    with ledger_write(db, [(product_id, branch_id)]):
        previous = ledger_balance(db, product_id, branch_id)
        difference = to_signed_qty(target - previous)

        if abs(difference) < QTY:
            payload = {
                "changed": False,
                "product_id": product_id,
                "branch_id": branch_id,
                "previous_qty": previous,
                "new_qty": previous,
                "difference": Decimal("0"),
            }
        else:
            cost = None
            if difference > 0:
                cost = to_cost(unit_cost) if unit_cost is not None else current_cost_basis(db, product_id, branch_id)
            sign = "+" if difference > 0 else ""
            adjustment = StockAdjustment(
                product_id=product_id,
                branch_id=branch_id,
                adjustment_date=on,
                previous_qty=previous,
                new_qty=target,
                difference=difference,
                unit_cost=cost,
                note=note or f"Ajuste manual de stock ({sign}{difference})",
            )
            db.add(adjustment)
            db.flush()

            event = parse_event({
                "kind": "stock_adjustment",
                "source_id": adjustment.id,
                "product_id": product_id,
                "branch_id": branch_id,
                "date": on,
                "difference": difference,
                "unit_cost": cost,
                "note": adjustment.note,
            })
            mv, result = _apply_event(db, event, allow_negative=True)
            recompute_snapshot(db, product_id, branch_id)

            payload = {"movement": mv.to_dict()} if result is None else outbound_payload(mv, result)
            payload.update({
                "changed": True,
                "adjustment": adjustment.to_dict(),
                "product_id": product_id,
                "branch_id": branch_id,
                "previous_qty": previous,
                "new_qty": target,
                "difference": difference,
            })

    current_app.logger.info(
        "Ajuste de stock %s (%s) sucursal=%s: %s -> %s",
        product.name, product_id, branch_id, payload["previous_qty"], payload["new_qty"],
    )
    return payload
