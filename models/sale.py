from datetime import datetime
from . import db


class SaleStatus:
    DRAFT = "DRAFT"          # líneas reservan stock, todavía no descuentan
    BILLED = "BILLED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    # Estados que ya descontaron stock del ledger
    FINALIZED = {BILLED, PAID}
    ALL = {DRAFT, BILLED, PAID, CANCELLED}


class Sale(db.Model):
    __tablename__ = "sales"

    id = db.Column(db.Integer, primary_key=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    sale_date = db.Column(db.Date, nullable=False)

    customer_name = db.Column(db.String(160), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=SaleStatus.DRAFT, index=True)

    total = db.Column(db.Numeric(14, 2), nullable=False, default="0.00")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy="selectin",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("ix_sales_branch_date", "branch_id", "sale_date"),
    )

    def __repr__(self):
        return f"<Sale {self.id} branch={self.branch_id} status={self.status} total={self.total}>"


class SaleItem(db.Model):
    __tablename__ = "sale_items"

    id = db.Column(db.Integer, primary_key=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)

    __table_args__ = (
        db.Index("ix_sale_items_sale_product", "sale_id", "product_id"),
    )

    def __repr__(self):
        return f"<SaleItem sale={self.sale_id} product={self.product_id} qty={self.qty}>"
