from datetime import datetime
from decimal import Decimal

from . import db


class MovementKind:
    IN = "IN"      # entrada: crea una capa FIFO
    OUT = "OUT"    # salida: consume capas FIFO

    ALL = {IN, OUT}


class SourceType:
    PURCHASE = "PURCHASE"                        # recepción de compra
    PRODUCTION = "PRODUCTION"                    # producto terminado
    CONSIGNMENT = "CONSIGNMENT"                  # venta en consignación
    SALE = "SALE"                                # venta ordinaria
    OPNAME = "OPNAME"                            # conteo físico aprobado
    PRODUCTION_MATERIAL = "PRODUCTION_MATERIAL"  # materia prima consumida
    TRANSFER_OUT = "TRANSFER_OUT"                # unloading: salida del producto origen
    TRANSFER_IN = "TRANSFER_IN"                  # unloading: entrada del producto destino
    ADJUSTMENT = "ADJUSTMENT"                    # ajuste manual (sin documento de origen)

    ALL = {
        PURCHASE, PRODUCTION, CONSIGNMENT, SALE, OPNAME,
        PRODUCTION_MATERIAL, TRANSFER_OUT, TRANSFER_IN, ADJUSTMENT,
    }


class StockMovement(db.Model):
    """
    Movimiento del ledger FIFO por (producto, sucursal).

    - IN: es una capa de costo. quantity_remaining arranca igual a quantity
      y sólo baja cuando una salida la consume (o sube al revertir esa salida).
    - OUT: quantity_remaining es NULL. Lo que no alcanzó a cubrirse con capas
      reales queda en quantity_uncovered (stock negativo marcado).
    """
    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    date = db.Column(db.Date, nullable=False)
    kind = db.Column(db.String(3), nullable=False)  # MovementKind.*

    quantity = db.Column(db.Numeric(14, 3), nullable=False)             # quantity_initial
    quantity_remaining = db.Column(db.Numeric(14, 3), nullable=True)    # sólo IN
    quantity_uncovered = db.Column(db.Numeric(14, 3), nullable=False, default=0)  # sólo OUT

    unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(12, 2), nullable=True)

    note = db.Column(db.String(255), nullable=True)

    # Documento que originó el movimiento (línea) y su cabecera
    source_type = db.Column(db.String(30), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)
    source_group_id = db.Column(db.Integer, nullable=True)

    transfer_id = db.Column(db.Integer, db.ForeignKey("conversion_transfers.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    consumptions = db.relationship(
        "MovementConsumption",
        foreign_keys="MovementConsumption.outbound_id",
        backref="outbound",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("source_type", "source_id", name="uq_stock_movement_source"),
        db.Index("ix_stock_movements_product_branch_date", "product_id", "branch_id", "date"),
        db.Index("ix_stock_movements_source", "source_type", "source_id"),
        db.Index("ix_stock_movements_source_group", "source_type", "source_group_id"),
    )

    @property
    def is_inbound(self) -> bool:
        return self.kind == MovementKind.IN

    @property
    def signed_quantity(self) -> Decimal:
        q = Decimal(str(self.quantity))
        return q if self.is_inbound else -q

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "date": self.date.isoformat(),
            "kind": self.kind,
            "quantity": self.quantity,
            "quantity_remaining": self.quantity_remaining,
            "quantity_uncovered": self.quantity_uncovered,
            "unit_cost": self.unit_cost,
            "total_cost": self.total_cost,
            "sale_price": self.sale_price,
            "note": self.note,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "source_group_id": self.source_group_id,
            "transfer_id": self.transfer_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StockMovement {self.id} {self.kind} product={self.product_id} branch={self.branch_id} qty={self.quantity}>"


class MovementConsumption(db.Model):
    """
    Detalle de consumo: cuánto tomó una salida de cada capa.
    layer_id NULL = faltante asignado a la capa virtual (stock negativo).
    Con esto se puede revertir una salida exactamente.
    """
    __tablename__ = "stock_movement_consumptions"

    id = db.Column(db.Integer, primary_key=True)

    outbound_id = db.Column(
        db.Integer, db.ForeignKey("stock_movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    layer_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    def to_dict(self) -> dict:
        q = Decimal(str(self.quantity))
        c = Decimal(str(self.unit_cost))
        return {
            "layer_id": self.layer_id,
            "quantity": q,
            "unit_cost": c,
            "subtotal": (q * c).quantize(Decimal("0.0001")),
        }

    def __repr__(self):
        return f"<MovementConsumption out={self.outbound_id} layer={self.layer_id} qty={self.quantity}>"
