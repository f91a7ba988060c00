from datetime import datetime
from . import db


class StockReservation(db.Model):
    """
    Cantidad comprometida por transacciones en borrador/pendientes
    (aún no convertidas en salida real del ledger).
    """
    __tablename__ = "stock_reservations"

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), primary_key=True)

    reserved_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<StockReservation product={self.product_id} branch={self.branch_id} reserved={self.reserved_qty}>"
