from datetime import date as date_type
from decimal import Decimal
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from models.branch import Branch
from models.movement import MovementKind, StockMovement
from models.product import Product
from models.product_branch_price import ProductBranchPrice
from models.stock_snapshot import StockSnapshot
from services.costing import get_cost_strategy
from services.locks import get_or_create_snapshot
from services.quantities import MONEY, ZERO, to_cost, to_decimal, to_money, to_signed_qty
from services.stock import reserved_quantity


def _margin(sale_price: Decimal, unit_cost: Decimal) -> Decimal:
    if unit_cost <= 0:
        return ZERO.quantize(MONEY)
    return ((sale_price - unit_cost) / unit_cost * 100).quantize(MONEY)


def recompute_snapshot(db: Session, product_id: int, branch_id: int, strategy: Optional[str] = None) -> StockSnapshot:
    """
    Recalcula el snapshot de (producto, sucursal) leyendo sólo el ledger.
    Idempotente: mismo ledger => mismo snapshot.
    """
    movements = (
        db.query(StockMovement)
        .filter_by(product_id=product_id, branch_id=branch_id)
        .order_by(StockMovement.date.asc(), StockMovement.created_at.asc(), StockMovement.id.asc())
        .all()
    )
    layers = [m for m in movements if m.kind == MovementKind.IN]
    outs = [m for m in movements if m.kind == MovementKind.OUT]

    stock_in = sum((to_decimal(m.quantity) for m in layers), ZERO)
    stock_out = sum((to_decimal(m.quantity) for m in outs), ZERO)
    remaining = sum((to_decimal(m.quantity_remaining) for m in layers), ZERO)
    uncovered = sum((to_decimal(m.quantity_uncovered) for m in outs), ZERO)
    value = sum((to_decimal(m.quantity_remaining) * to_decimal(m.unit_cost) for m in layers), ZERO)

    product = db.get(Product, product_id)
    branch_price = db.get(ProductBranchPrice, (product_id, branch_id))

    unit_cost = get_cost_strategy(strategy).representative_cost(layers)
    if unit_cost is None and branch_price is not None:
        unit_cost = to_cost(branch_price.cost_price)
    if unit_cost is None:
        unit_cost = to_cost(product.cost_price) if product else ZERO

    # precio de venta: el fijado para la sucursal, si no el último informado
    # en una entrada, si no el del producto
    sale_price = None
    if branch_price is not None:
        sale_price = to_money(branch_price.sale_price)
    else:
        for m in reversed(layers):
            if m.sale_price is not None and to_decimal(m.sale_price) > 0:
                sale_price = to_money(m.sale_price)
                break
    if sale_price is None:
        sale_price = to_money(product.sale_price) if product else ZERO

    current = to_signed_qty(remaining - uncovered)

    snap = get_or_create_snapshot(db, product_id, branch_id)
    snap.current_stock = current
    snap.stock_in_total = to_signed_qty(stock_in)
    snap.stock_out_total = to_signed_qty(stock_out)
    snap.unit_cost = unit_cost
    snap.sale_price = sale_price
    snap.margin_pct = _margin(sale_price, unit_cost)
    snap.stock_value = value.quantize(MONEY)
    snap.has_negative = current < 0
    db.flush()
    return snap


def recompute_many(db: Session, keys: Iterable, strategy: Optional[str] = None) -> list:
    return [recompute_snapshot(db, p, b, strategy) for p, b in sorted(set(keys))]


def _page_args(page, per_page):
    default = int(current_app.config.get("STOCK_PAGE_SIZE", 10))
    try:
        page = max(int(page or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = int(per_page or default)
    except (TypeError, ValueError):
        per_page = default
    return page, min(max(per_page, 1), 200)


def _filtered(q, *, product_id=None, branch_id=None, search=None):
    if product_id:
        q = q.filter(StockSnapshot.product_id == product_id)
    if branch_id:
        q = q.filter(StockSnapshot.branch_id == branch_id)
    search = (search or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter((Product.name.ilike(like)) | (Product.sku.ilike(like)))
    return q


def _summary(db: Session, low_threshold: Decimal, **filters) -> dict:
    """Resumen sobre todo el filtro, no sólo la página (agregado en SQL)."""
    stock = StockSnapshot.current_stock
    q = _filtered(
        db.query(
            Product.unit,
            func.count(),
            func.sum(stock),
            func.sum(case((stock < 0, 1), else_=0)),
            func.sum(case((and_(stock >= 0, stock <= low_threshold), 1), else_=0)),
            func.sum(StockSnapshot.stock_value),
        )
        .select_from(StockSnapshot)
        .join(Product, Product.id == StockSnapshot.product_id),
        **filters,
    ).group_by(Product.unit)

    stock_by_unit: dict = {}
    total = low_count = negative_count = 0
    total_value = ZERO
    for unit, count, unit_stock, negatives, lows, value in q.all():
        stock_by_unit[unit] = to_signed_qty(unit_stock)
        total += count
        negative_count += int(negatives or 0)
        low_count += int(lows or 0)
        total_value += to_decimal(value)

    return {
        "total_items": total,
        "total_stock_by_unit": stock_by_unit,
        "low_stock_count": low_count,
        "negative_stock_count": negative_count,
        "total_value": total_value.quantize(MONEY),
    }


def query_stock(
    db: Session,
    *,
    product_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: Optional[int] = None,
) -> dict:
    """
    Vista de stock y valorización (sólo lectura).

    - Con branch_id: sólo las filas de esa sucursal.
    - Sin branch_id (vista global): una fila por (producto, sucursal). No se
      suma entre sucursales: el stock está particionado por sucursal.
    """
    page, per_page = _page_args(page, per_page)
    low_threshold = to_decimal(current_app.config.get("STOCK_LOW_THRESHOLD", 10))
    filters = dict(product_id=product_id, branch_id=branch_id, search=search)

    summary = _summary(db, low_threshold, **filters)
    total = summary["total_items"]

    q = _filtered(
        db.query(StockSnapshot, Product, Branch)
        .join(Product, Product.id == StockSnapshot.product_id)
        .join(Branch, Branch.id == StockSnapshot.branch_id),
        **filters,
    ).order_by(Product.name.asc(), Branch.name.asc(), StockSnapshot.branch_id.asc())

    items = []
    for snap, product, branch in q.offset((page - 1) * per_page).limit(per_page).all():
        row = snap.to_dict()
        row.update({
            "product_name": product.name,
            "sku": product.sku,
            "unit": product.unit,
            "branch_name": branch.name,
        })
        items.append(row)

    return {
        "items": items,
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total_records": total,
            "total_pages": (total + per_page - 1) // per_page,
        },
        "summary": summary,
    }


def movement_history(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    date_from: Optional[date_type] = None,
    date_to: Optional[date_type] = None,
) -> dict:
    """Kardex FIFO con saldo corrido, en orden cronológico."""
    base = (
        db.query(StockMovement)
        .filter_by(product_id=product_id, branch_id=branch_id)
        .order_by(StockMovement.date.asc(), StockMovement.created_at.asc(), StockMovement.id.asc())
    )

    opening = ZERO
    if date_from:
        for m in base.filter(StockMovement.date < date_from).all():
            opening += m.signed_quantity

    q = base
    if date_from:
        q = q.filter(StockMovement.date >= date_from)
    if date_to:
        q = q.filter(StockMovement.date <= date_to)

    balance = opening
    total_in = ZERO
    total_out = ZERO
    rows = []
    for m in q.all():
        balance += m.signed_quantity
        if m.is_inbound:
            total_in += to_decimal(m.quantity)
        else:
            total_out += to_decimal(m.quantity)
        row = m.to_dict()
        row["running_balance"] = to_signed_qty(balance)
        rows.append(row)

    # Valor del stock: capas abiertas (todas, no sólo las del rango)
    open_value = ZERO
    physical = ZERO
    for m in base.all():
        if m.is_inbound:
            open_value += to_decimal(m.quantity_remaining) * to_decimal(m.unit_cost)
            physical += to_decimal(m.quantity_remaining)
        else:
            physical -= to_decimal(m.quantity_uncovered)

    return {
        "product_id": product_id,
        "branch_id": branch_id,
        "movements": rows,
        "summary": {
            "opening_balance": to_signed_qty(opening),
            "total_in": to_signed_qty(total_in),
            "total_out": to_signed_qty(total_out),
            "available_stock": to_signed_qty(physical - reserved_quantity(db, product_id, branch_id)),
            "stock_value": open_value.quantize(MONEY),
        },
    }
