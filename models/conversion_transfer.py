from datetime import datetime
from . import db


class ConversionKind:
    MASS_TO_VOLUME = "MASS_TO_VOLUME"  # KG -> ML
    VOLUME_TO_MASS = "VOLUME_TO_MASS"  # ML -> KG
    SAME_UNIT = "SAME_UNIT"

    ALL = {MASS_TO_VOLUME, VOLUME_TO_MASS, SAME_UNIT}


class ConversionTransfer(db.Model):
    """
    Unloading: pasa cantidad de un producto (ej. jerigen/curah en KG) a otro
    (ej. kiloan en ML) dentro de la misma sucursal.
    Genera una salida en el origen y una entrada en el destino (transfer_id compartido).
    """
    __tablename__ = "conversion_transfers"

    id = db.Column(db.Integer, primary_key=True)

    # Agrupa los items enviados juntos en un mismo unloading
    batch_id = db.Column(db.String(32), nullable=True, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    source_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    target_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    transfer_date = db.Column(db.Date, nullable=False)

    input_quantity = db.Column(db.Numeric(14, 3), nullable=False)
    input_unit = db.Column(db.String(10), nullable=False)
    output_quantity = db.Column(db.Numeric(14, 3), nullable=False)
    output_unit = db.Column(db.String(10), nullable=False)

    density_factor = db.Column(db.Numeric(10, 4), nullable=True)
    conversion_kind = db.Column(db.String(20), nullable=False, default=ConversionKind.SAME_UNIT)

    # Costo con el que entró el destino (para que el replay lo reproduzca igual)
    target_unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    cost_of_goods = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_conversion_transfers_branch_date", "branch_id", "transfer_date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "branch_id": self.branch_id,
            "source_product_id": self.source_product_id,
            "target_product_id": self.target_product_id,
            "date": self.transfer_date.isoformat(),
            "input_quantity": self.input_quantity,
            "input_unit": self.input_unit,
            "output_quantity": self.output_quantity,
            "output_unit": self.output_unit,
            "density_factor": self.density_factor,
            "conversion_kind": self.conversion_kind,
            "target_unit_cost": self.target_unit_cost,
            "cost_of_goods": self.cost_of_goods,
            "note": self.note,
        }

    def __repr__(self):
        return (
            f"<ConversionTransfer {self.id} {self.source_product_id}->{self.target_product_id} "
            f"{self.input_quantity}{self.input_unit}->{self.output_quantity}{self.output_unit}>"
        )
