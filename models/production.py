from datetime import datetime
from . import db


class ProductionStatus:
    DRAFT = "DRAFT"
    POSTED = "POSTED"   # producción terminada: entra producto, salen materiales

    ALL = {DRAFT, POSTED}


class Production(db.Model):
    __tablename__ = "productions"

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    production_date = db.Column(db.Date, nullable=False)

    qty = db.Column(db.Numeric(14, 3), nullable=False)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=ProductionStatus.DRAFT, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    materials = db.relationship(
        "ProductionMaterial", backref="production", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Production {self.id} product={self.product_id} qty={self.qty} status={self.status}>"


class ProductionMaterial(db.Model):
    """Composición (BOM) consumida por una producción."""
    __tablename__ = "production_materials"

    id = db.Column(db.Integer, primary_key=True)

    production_id = db.Column(db.Integer, db.ForeignKey("productions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty = db.Column(db.Numeric(14, 3), nullable=False)

    def __repr__(self):
        return f"<ProductionMaterial production={self.production_id} product={self.product_id} qty={self.qty}>"
