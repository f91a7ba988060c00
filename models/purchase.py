from datetime import datetime
from . import db


class PurchaseStatus:
    ORDERED = "ORDERED"
    RECEIVED = "RECEIVED"   # sólo las compras recibidas afectan stock
    CANCELLED = "CANCELLED"

    ALL = {ORDERED, RECEIVED, CANCELLED}


class Purchase(db.Model):
    __tablename__ = "purchases"

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    purchase_date = db.Column(db.Date, nullable=False)

    supplier_name = db.Column(db.String(160), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PurchaseStatus.ORDERED, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    items = db.relationship("PurchaseItem", backref="purchase", lazy="selectin", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Purchase {self.id} branch={self.branch_id} status={self.status}>"


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"

    id = db.Column(db.Integer, primary_key=True)

    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Numeric(14, 3), nullable=False)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    # Precio de venta sugerido al recibir (informativo)
    sale_price = db.Column(db.Numeric(12, 2), nullable=True)

    def __repr__(self):
        return f"<PurchaseItem purchase={self.purchase_id} product={self.product_id} qty={self.qty}>"
