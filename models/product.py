from datetime import datetime

from . import db


class ProductUnit:
    KG = "KG"      # masa
    ML = "ML"      # volumen
    PCS = "PCS"    # unidades

    MASS = {KG}
    VOLUME = {ML}
    ALL = {KG, ML, PCS}


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(160), nullable=False)
    sku = db.Column(db.String(60), nullable=True, unique=True)

    # Unidad física con la que se lleva el stock (KG / ML / PCS)
    unit = db.Column(db.String(10), nullable=False, default=ProductUnit.PCS)

    # Densidad (kg por litro) para convertir masa <-> volumen en unloading
    density_kg_per_liter = db.Column(db.Numeric(10, 4), nullable=True)

    # Costo de referencia cuando todavía no hay capas FIFO
    cost_price = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def has_density(self) -> bool:
        return self.density_kg_per_liter is not None and self.density_kg_per_liter > 0

    def __repr__(self):
        return f"<Product {self.id} {self.name} unit={self.unit}>"
