from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from models.conversion_transfer import ConversionTransfer
from models.movement import MovementConsumption, MovementKind, StockMovement
from models.product import Product
from services.errors import InsufficientStock
from services.quantities import COST, ZERO, to_cost, to_decimal, to_qty


@dataclass(frozen=True)
class ConsumedLayer:
    layer_id: Optional[int]  # None = capa virtual (faltante)
    quantity: Decimal
    unit_cost: Decimal

    @property
    def subtotal(self) -> Decimal:
        return (self.quantity * self.unit_cost).quantize(COST)

    def to_dict(self) -> dict:
        return {
            "layer_id": self.layer_id,
            "quantity": self.quantity,
            "unit_cost": self.unit_cost,
            "subtotal": self.subtotal,
        }


@dataclass
class FifoResult:
    quantity: Decimal
    consumed: List[ConsumedLayer] = field(default_factory=list)
    shortfall: Decimal = ZERO

    @property
    def cost_of_goods(self) -> Decimal:
        return sum((c.subtotal for c in self.consumed), ZERO).quantize(COST)

    @property
    def unit_cost(self) -> Decimal:
        if self.quantity <= 0:
            return ZERO
        return to_cost(self.cost_of_goods / self.quantity)


def layers_query(db: Session, product_id: int, branch_id: int):
    """Capas (entradas) en orden FIFO: fecha, inserción, id."""
    return (
        db.query(StockMovement)
        .filter(
            StockMovement.product_id == product_id,
            StockMovement.branch_id == branch_id,
            StockMovement.kind == MovementKind.IN,
        )
        .order_by(StockMovement.date.asc(), StockMovement.created_at.asc(), StockMovement.id.asc())
    )


def open_layers(db: Session, product_id: int, branch_id: int) -> List[StockMovement]:
    return (
        layers_query(db, product_id, branch_id)
        .filter(StockMovement.quantity_remaining > 0)
        .with_for_update()
        .all()
    )


def last_known_cost(db: Session, product_id: int, branch_id: int) -> Decimal:
    """Costo de la entrada más reciente (aunque ya esté consumida); si no hay, cost_price del producto."""
    last = (
        layers_query(db, product_id, branch_id)
        .order_by(None)
        .order_by(StockMovement.date.desc(), StockMovement.created_at.desc(), StockMovement.id.desc())
        .first()
    )
    if last:
        return to_cost(last.unit_cost)
    product = db.get(Product, product_id)
    return to_cost(product.cost_price) if product else ZERO


def consume_fifo(db: Session, outbound: StockMovement, *, allow_negative: bool = False) -> FifoResult:
    """
    Consume capas FIFO para una salida ya creada (flush hecho, tiene id).

    - Descuenta quantity_remaining de las capas más antiguas primero.
    - Registra un MovementConsumption por capa tocada (para revertir exacto).
    - Si no alcanza: InsufficientStock, salvo allow_negative=True, en cuyo caso
      el faltante va a una capa virtual valorizada al último costo conocido.
    """
    qty = to_qty(outbound.quantity)
    layers = open_layers(db, outbound.product_id, outbound.branch_id)

    available = sum((to_decimal(layer.quantity_remaining) for layer in layers), ZERO)
    if available < qty and not allow_negative:
        raise InsufficientStock(
            product_id=outbound.product_id,
            branch_id=outbound.branch_id,
            requested=qty,
            available=available,
        )

    result = FifoResult(quantity=qty)
    pending = qty
    for layer in layers:
        if pending <= 0:
            break
        remaining = to_decimal(layer.quantity_remaining)
        take = min(remaining, pending)
        layer.quantity_remaining = remaining - take
        pending -= take
        result.consumed.append(ConsumedLayer(layer.id, take, to_cost(layer.unit_cost)))

    if pending > 0:
        result.shortfall = pending
        result.consumed.append(
            ConsumedLayer(None, pending, last_known_cost(db, outbound.product_id, outbound.branch_id))
        )

    for c in result.consumed:
        outbound.consumptions.append(
            MovementConsumption(layer_id=c.layer_id, quantity=c.quantity, unit_cost=c.unit_cost)
        )

    outbound.quantity_uncovered = result.shortfall
    outbound.unit_cost = result.unit_cost
    outbound.total_cost = result.cost_of_goods
    db.flush()
    return result


def restore_layers(db: Session, outbound: StockMovement) -> List[ConsumedLayer]:
    """Devuelve a cada capa exactamente lo que esta salida le quitó."""
    restored = []
    for c in outbound.consumptions:
        qty = to_decimal(c.quantity)
        if c.layer_id is not None:
            layer = db.get(StockMovement, c.layer_id)
            if layer is not None:
                layer.quantity_remaining = to_decimal(layer.quantity_remaining) + qty
        restored.append(ConsumedLayer(c.layer_id, qty, to_cost(c.unit_cost)))
    db.flush()
    return restored


def _reprice(db: Session, outbound: StockMovement) -> None:
    total = sum(
        ((to_decimal(c.quantity) * to_decimal(c.unit_cost)).quantize(COST) for c in outbound.consumptions),
        ZERO,
    )
    qty = to_decimal(outbound.quantity)
    outbound.total_cost = total.quantize(COST)
    outbound.unit_cost = to_cost(total / qty) if qty > 0 else ZERO
    if outbound.transfer_id is not None:
        t = db.get(ConversionTransfer, outbound.transfer_id)
        if t is not None:
            t.cost_of_goods = outbound.total_cost


def settle_uncovered(db: Session, layer: StockMovement) -> Decimal:
    """
    Una entrada nueva cubre primero los faltantes pendientes del (producto, sucursal).

    Por cada salida con quantity_uncovered > 0 (en orden FIFO) se pasa lo cubierto
    de la capa virtual a esta capa: baja quantity_remaining de la capa, baja
    quantity_uncovered de la salida y queda un MovementConsumption real, así
    revertir la salida devuelve la cantidad a esta capa.
    """
    pending = (
        db.query(StockMovement)
        .filter(
            StockMovement.product_id == layer.product_id,
            StockMovement.branch_id == layer.branch_id,
            StockMovement.kind == MovementKind.OUT,
            StockMovement.quantity_uncovered > 0,
        )
        .order_by(StockMovement.date.asc(), StockMovement.created_at.asc(), StockMovement.id.asc())
        .with_for_update()
        .all()
    )

    settled = ZERO
    for outbound in pending:
        available = to_decimal(layer.quantity_remaining)
        if available <= 0:
            break
        uncovered = to_decimal(outbound.quantity_uncovered)
        take = min(available, uncovered)

        layer.quantity_remaining = available - take
        outbound.quantity_uncovered = uncovered - take

        left = take
        for c in [c for c in outbound.consumptions if c.layer_id is None]:
            if left <= 0:
                break
            q = to_decimal(c.quantity)
            moved = min(q, left)
            if moved == q:
                outbound.consumptions.remove(c)
            else:
                c.quantity = q - moved
            left -= moved
        outbound.consumptions.append(
            MovementConsumption(layer_id=layer.id, quantity=take, unit_cost=to_cost(layer.unit_cost))
        )
        _reprice(db, outbound)
        settled += take

    if settled > 0:
        db.flush()
    return settled
