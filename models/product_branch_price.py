from datetime import datetime
from . import db


class ProductBranchPrice(db.Model):
    """Costo de referencia y precio de venta fijados a mano para una sucursal."""
    __tablename__ = "product_branch_prices"

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), primary_key=True)

    cost_price = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "cost_price": self.cost_price,
            "sale_price": self.sale_price,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProductBranchPrice product={self.product_id} branch={self.branch_id} sale={self.sale_price}>"
