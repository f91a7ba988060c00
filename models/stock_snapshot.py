from datetime import datetime
from . import db


class StockSnapshot(db.Model):
    """
    Resumen materializado por (producto, sucursal).
    Es una proyección derivada del ledger (stock_movements): siempre se puede
    reconstruir y nunca se usa como segunda fuente de verdad.
    """
    __tablename__ = "stock_snapshots"

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), primary_key=True)

    current_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    stock_in_total = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    stock_out_total = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    margin_pct = db.Column(db.Numeric(9, 2), nullable=False, default=0)
    stock_value = db.Column(db.Numeric(18, 2), nullable=False, default=0)

    has_negative = db.Column(db.Boolean, nullable=False, default=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_stock_snapshots_branch", "branch_id"),
    )

    def as_row(self) -> tuple:
        """Valores derivados (sin timestamps) para comparar proyecciones."""
        return (
            self.product_id,
            self.branch_id,
            self.current_stock,
            self.stock_in_total,
            self.stock_out_total,
            self.unit_cost,
            self.sale_price,
            self.margin_pct,
            self.stock_value,
            self.has_negative,
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "current_stock": self.current_stock,
            "stock_in_total": self.stock_in_total,
            "stock_out_total": self.stock_out_total,
            "unit_cost": self.unit_cost,
            "sale_price": self.sale_price,
            "margin_pct": self.margin_pct,
            "stock_value": self.stock_value,
            "has_negative": self.has_negative,
        }

    def __repr__(self):
        return f"<StockSnapshot product={self.product_id} branch={self.branch_id} stock={self.current_stock}>"
