"""
Costo de referencia y precio de venta por sucursal.

branch_id=None aplica a todas las sucursales: actualiza el maestro de
productos y también los precios ya fijados por sucursal.
"""
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy.orm import Session

from models.product_branch_price import ProductBranchPrice
from models.stock_snapshot import StockSnapshot
from services.aggregator import recompute_many
from services.errors import InvalidPrice
from services.locks import ledger_write
from services.quantities import ZERO, to_cost, to_decimal, to_money
from services.stock import get_product


def _non_negative(field: str, value, convert) -> Decimal:
    if value is None or to_decimal(value) < 0:
        raise InvalidPrice(field, value)
    return convert(value)


def _upsert(db: Session, product_id: int, branch_id: int, cost: Decimal, price: Decimal) -> ProductBranchPrice:
    row = db.get(ProductBranchPrice, (product_id, branch_id))
    if row is None:
        row = ProductBranchPrice(product_id=product_id, branch_id=branch_id)
        db.add(row)
    row.cost_price = cost
    row.sale_price = price
    return row


def _priced_branches(db: Session, product_id: int) -> set:
    with_snapshot = db.query(StockSnapshot.branch_id).filter_by(product_id=product_id).all()
    with_price = db.query(ProductBranchPrice.branch_id).filter_by(product_id=product_id).all()
    return {b for (b,) in with_snapshot} | {b for (b,) in with_price}


def update_price(
    db: Session,
    *,
    product_id: int,
    branch_id: Optional[int] = None,
    unit_cost,
    sale_price,
) -> dict:
    """Fija costo de referencia y precio de venta y recalcula los snapshots afectados."""
    cost = _non_negative("unit_cost", unit_cost, to_cost)
    price = _non_negative("sale_price", sale_price, to_money)
    product = get_product(db, product_id)

    if branch_id:
        branches = {int(branch_id)}
    else:
        branches = _priced_branches(db, product_id)
    keys = [(product_id, b) for b in branches]

    with ledger_write(db, keys):
        if branch_id:
            current = db.get(ProductBranchPrice, (product_id, int(branch_id)))
            source = current or product
        else:
            source = product
        old_cost, old_price = to_cost(source.cost_price), to_money(source.sale_price)

        if not branch_id:
            product.cost_price = cost
            product.sale_price = price
        for b in branches:
            _upsert(db, product_id, b, cost, price)
        db.flush()
        snapshots = [s.to_dict() for s in recompute_many(db, keys)]

    current_app.logger.info(
        "Precio actualizado producto=%s sucursal=%s costo %s -> %s venta %s -> %s",
        product_id, branch_id or "todas", old_cost, cost, old_price, price,
    )
    margin = ((price - cost) / cost * 100) if cost > 0 else ZERO
    return {
        "product_id": product_id,
        "branch_id": branch_id or None,
        "old_cost": old_cost,
        "new_cost": cost,
        "old_sale_price": old_price,
        "new_sale_price": price,
        "margin_pct": to_money(margin),
        "snapshots": snapshots,
    }
