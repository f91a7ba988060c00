from datetime import date as date_type
from decimal import Decimal
from typing import List, Optional, Set, Tuple

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models.movement import MovementConsumption, MovementKind, SourceType, StockMovement
from models.product import Product
from models.product_branch_price import ProductBranchPrice
from models.reservation import StockReservation
from services.costing import get_cost_strategy
from services.errors import (
    DuplicateSourceReference,
    InsufficientStock,
    InvalidQuantity,
    LayerInUse,
    MovementNotFound,
    ProductNotFound,
)
from services.fifo import FifoResult, consume_fifo, layers_query, restore_layers, settle_uncovered
from services.quantities import ZERO, to_cost, to_decimal, to_money, to_qty, to_signed_qty


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFound(product_id)
    return product


def _check_source(db: Session, source_type: Optional[str], source_id: Optional[int]) -> None:
    if source_type is not None and source_type not in SourceType.ALL:
        raise ValueError("source_type inválido")
    if source_type is None or source_id is None:
        return
    exists = (
        db.query(StockMovement.id)
        .filter(StockMovement.source_type == source_type, StockMovement.source_id == source_id)
        .first()
    )
    if exists:
        raise DuplicateSourceReference(source_type, source_id)


def ledger_balance(db: Session, product_id: int, branch_id: int) -> Decimal:
    """Stock físico según el ledger: capas abiertas - faltantes no cubiertos."""
    remaining = (
        db.query(func.sum(StockMovement.quantity_remaining))
        .filter_by(product_id=product_id, branch_id=branch_id, kind=MovementKind.IN)
        .scalar()
    )
    uncovered = (
        db.query(func.sum(StockMovement.quantity_uncovered))
        .filter_by(product_id=product_id, branch_id=branch_id, kind=MovementKind.OUT)
        .scalar()
    )
    return to_signed_qty(to_decimal(remaining) - to_decimal(uncovered))


def reserved_quantity(db: Session, product_id: int, branch_id: int) -> Decimal:
    r = db.get(StockReservation, (product_id, branch_id))
    return to_decimal(r.reserved_qty) if r else ZERO


def available_quantity(db: Session, product_id: int, branch_id: int) -> Decimal:
    return ledger_balance(db, product_id, branch_id) - reserved_quantity(db, product_id, branch_id)


def reference_cost(db: Session, product_id: int, branch_id: int) -> Decimal:
    """Costo sin capas: el fijado para la sucursal, si no el cost_price del producto."""
    price = db.get(ProductBranchPrice, (product_id, branch_id))
    if price is not None:
        return to_cost(price.cost_price)
    return to_cost(get_product(db, product_id).cost_price)


def current_cost_basis(db: Session, product_id: int, branch_id: int) -> Decimal:
    """Costo representativo actual; sin capas => costo de referencia."""
    layers = layers_query(db, product_id, branch_id).all()
    cost = get_cost_strategy().representative_cost(layers)
    if cost is None:
        return reference_cost(db, product_id, branch_id)
    return cost


def add_stock(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    qty,
    date: date_type,
    unit_cost=None,
    sale_price=None,
    source_type: Optional[str] = None,
    source_id: Optional[int] = None,
    source_group_id: Optional[int] = None,
    transfer_id: Optional[int] = None,
    note: Optional[str] = None,
) -> StockMovement:
    """
    Entrada: crea una capa FIFO con quantity_remaining = qty.
    Si el (producto, sucursal) tiene faltantes pendientes, la capa los cubre primero.
    unit_cost None => se usa el costo representativo actual del (producto, sucursal).
    Sólo hace flush; el commit lo maneja la unidad de trabajo (services.locks).
    """
    get_product(db, product_id)

    q = to_qty(qty)
    if q <= 0:
        raise InvalidQuantity(qty)

    _check_source(db, source_type, source_id)

    cost = to_cost(unit_cost) if unit_cost is not None else current_cost_basis(db, product_id, branch_id)

    mv = StockMovement(
        product_id=product_id,
        branch_id=branch_id,
        date=date,
        kind=MovementKind.IN,
        quantity=q,
        quantity_remaining=q,
        quantity_uncovered=ZERO,
        unit_cost=cost,
        total_cost=(q * cost).quantize(Decimal("0.0001")),
        sale_price=to_money(sale_price) if sale_price is not None else None,
        source_type=source_type,
        source_id=source_id,
        source_group_id=source_group_id,
        transfer_id=transfer_id,
        note=note,
    )
    db.add(mv)
    db.flush()

    settled = settle_uncovered(db, mv)
    if settled > 0:
        current_app.logger.info(
            "Faltante cubierto: product=%s branch=%s cantidad=%s (entrada #%s)",
            product_id, branch_id, settled, mv.id,
        )
    return mv


def remove_stock(
    db: Session,
    *,
    product_id: int,
    branch_id: int,
    qty,
    date: date_type,
    allow_negative: bool = False,
    sale_price=None,
    source_type: Optional[str] = None,
    source_id: Optional[int] = None,
    source_group_id: Optional[int] = None,
    transfer_id: Optional[int] = None,
    note: Optional[str] = None,
) -> Tuple[StockMovement, FifoResult]:
    """
    Salida vía FIFO.
    Sin allow_negative se valida contra el disponible (físico - reservado):
    por el camino normal el stock nunca queda negativo en silencio.
    """
    get_product(db, product_id)

    q = to_qty(qty)
    if q <= 0:
        raise InvalidQuantity(qty)

    _check_source(db, source_type, source_id)

    if not allow_negative:
        available = available_quantity(db, product_id, branch_id)
        if q > available:
            raise InsufficientStock(
                product_id=product_id, branch_id=branch_id, requested=q, available=available
            )

    mv = StockMovement(
        product_id=product_id,
        branch_id=branch_id,
        date=date,
        kind=MovementKind.OUT,
        quantity=q,
        quantity_remaining=None,
        quantity_uncovered=ZERO,
        sale_price=to_money(sale_price) if sale_price is not None else None,
        source_type=source_type,
        source_id=source_id,
        source_group_id=source_group_id,
        transfer_id=transfer_id,
        note=note,
    )
    db.add(mv)
    db.flush()

    result = consume_fifo(db, mv, allow_negative=allow_negative)
    if result.shortfall > 0:
        current_app.logger.warning(
            "Stock negativo: product=%s branch=%s faltante=%s (%s #%s)",
            product_id, branch_id, result.shortfall, source_type, source_id,
        )
    return mv, result


def _consumed_from(db: Session, layer: StockMovement) -> Decimal:
    used = (
        db.query(func.sum(MovementConsumption.quantity))
        .filter(MovementConsumption.layer_id == layer.id)
        .scalar()
    )
    return to_decimal(used)


def reverse_movements(db: Session, movements: List[StockMovement]) -> Set[Tuple[int, int]]:
    """
    Revierte y borra movimientos:
    - salidas primero (más nuevas primero), devolviendo a cada capa lo que tomaron;
    - después entradas, sólo si nadie las consumió (LayerInUse si no).
    """
    touched = set()
    outs = sorted((m for m in movements if m.kind == MovementKind.OUT), key=lambda m: m.id, reverse=True)
    ins = [m for m in movements if m.kind == MovementKind.IN]

    for mv in outs:
        restore_layers(db, mv)
        touched.add((mv.product_id, mv.branch_id))
        db.delete(mv)
    db.flush()

    for mv in ins:
        used = _consumed_from(db, mv)
        if used > 0:
            raise LayerInUse(movement_id=mv.id, consumed=used)
        touched.add((mv.product_id, mv.branch_id))
        db.delete(mv)
    db.flush()
    return touched


def find_source_movements(
    db: Session,
    *,
    source_type: str,
    source_id: Optional[int] = None,
    group_id: Optional[int] = None,
) -> List[StockMovement]:
    q = db.query(StockMovement).filter(StockMovement.source_type == source_type)
    if source_id is not None:
        q = q.filter(StockMovement.source_id == source_id)
    elif group_id is not None:
        q = q.filter(StockMovement.source_group_id == group_id)
    else:
        raise ValueError("source_id o group_id requerido")
    movements = q.order_by(StockMovement.id.asc()).all()
    if not movements:
        raise MovementNotFound(source_type, source_id=source_id, group_id=group_id)
    return movements


def find_production_movements(db: Session, production_id: int) -> List[StockMovement]:
    """Producto terminado + materias primas consumidas de una misma producción."""
    movements = (
        db.query(StockMovement)
        .filter(
            or_(
                (StockMovement.source_type == SourceType.PRODUCTION) & (StockMovement.source_id == production_id),
                (StockMovement.source_type == SourceType.PRODUCTION_MATERIAL)
                & (StockMovement.source_group_id == production_id),
            )
        )
        .order_by(StockMovement.id.asc())
        .all()
    )
    if not movements:
        raise MovementNotFound(SourceType.PRODUCTION, source_id=production_id)
    return movements
