from datetime import datetime
from . import db


class Consignment(db.Model):
    """Mercadería dejada en consignación en una tienda."""
    __tablename__ = "consignments"

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    store_name = db.Column(db.String(160), nullable=True)
    consignment_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    items = db.relationship("ConsignmentItem", backref="consignment", lazy="selectin", cascade="all, delete-orphan")


class ConsignmentItem(db.Model):
    __tablename__ = "consignment_items"

    id = db.Column(db.Integer, primary_key=True)

    consignment_id = db.Column(db.Integer, db.ForeignKey("consignments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty_sent = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)


class ConsignmentSale(db.Model):
    """Venta reportada por la tienda: es lo que descuenta stock."""
    __tablename__ = "consignment_sales"

    id = db.Column(db.Integer, primary_key=True)

    # Sin FK estricta: el reporte de la tienda puede llegar antes/sin su detalle
    consignment_item_id = db.Column(db.Integer, nullable=False, index=True)
    sale_date = db.Column(db.Date, nullable=False)
    qty_sold = db.Column(db.Numeric(14, 3), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ConsignmentSale {self.id} item={self.consignment_item_id} qty={self.qty_sold}>"
