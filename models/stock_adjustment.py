from datetime import datetime
from . import db


class StockAdjustment(db.Model):
    """
    Ajuste manual de stock a un valor absoluto.
    difference = new_qty - previous_qty (con signo); es el registro de origen
    que el rebuild vuelve a aplicar.
    """
    __tablename__ = "stock_adjustments"

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    adjustment_date = db.Column(db.Date, nullable=False)

    previous_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    new_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    difference = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    # costo de la capa cuando el ajuste es positivo (None => costo actual)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "adjustment_date": self.adjustment_date.isoformat() if self.adjustment_date else None,
            "previous_qty": self.previous_qty,
            "new_qty": self.new_qty,
            "difference": self.difference,
            "unit_cost": self.unit_cost,
            "note": self.note,
        }

    def __repr__(self):
        return f"<StockAdjustment {self.id} product={self.product_id} diff={self.difference}>"
