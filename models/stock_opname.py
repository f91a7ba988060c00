from datetime import datetime
from . import db


class OpnameStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"   # sólo el opname aprobado ajusta stock

    ALL = {PENDING, APPROVED}


class StockOpname(db.Model):
    """Conteo físico: difference = counted_qty - system_qty."""
    __tablename__ = "stock_opnames"

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    opname_date = db.Column(db.Date, nullable=False)

    system_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    counted_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    difference = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=OpnameStatus.PENDING, index=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<StockOpname {self.id} product={self.product_id} diff={self.difference} status={self.status}>"
