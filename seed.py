from datetime import date

from models import db
from models.branch import Branch
from models.product import Product, ProductUnit
from models.purchase import Purchase, PurchaseItem, PurchaseStatus
from models.sale import Sale, SaleItem, SaleStatus
from services.reconciliation import rebuild_all


def _get_or_create(model, defaults=None, **filters):
    obj = db.session.query(model).filter_by(**filters).first()
    if not obj:
        obj = model(**filters, **(defaults or {}))
        db.session.add(obj)
        db.session.flush()
    return obj


def run(app=None):
    if app is None:
        from app import create_app
        app = create_app()

    with app.app_context():
        # No usamos db.create_all(): el esquema viene de las migraciones (flask db upgrade)

        # 1) Bodega central + sucursal
        bodega = _get_or_create(Branch, name="Bodega Central", defaults={"is_warehouse": True})
        tienda = _get_or_create(Branch, name="Sucursal Matriz", defaults={"is_warehouse": False})

        # 2) Productos: a granel (KG, con densidad), fraccionado (ML) y unitario
        curah = _get_or_create(
            Product, sku="JER-001",
            defaults={"name": "Jabón líquido curah", "unit": ProductUnit.KG,
                      "density_kg_per_liter": 0.9, "cost_price": 10, "sale_price": 15},
        )
        kiloan = _get_or_create(
            Product, sku="KIL-001",
            defaults={"name": "Jabón líquido kiloan", "unit": ProductUnit.ML,
                      "cost_price": 0.012, "sale_price": 0.02},
        )
        botella = _get_or_create(
            Product, sku="BOT-001",
            defaults={"name": "Botella 1L", "unit": ProductUnit.PCS, "cost_price": 1.5, "sale_price": 3},
        )

        # 3) Compra recibida en bodega
        if not db.session.query(Purchase).filter_by(supplier_name="Proveedor Demo").first():
            p = Purchase(
                branch_id=bodega.id,
                purchase_date=date(2024, 1, 1),
                supplier_name="Proveedor Demo",
                status=PurchaseStatus.RECEIVED,
            )
            p.items.append(PurchaseItem(product_id=curah.id, qty=100, unit_cost=10, sale_price=15))
            p.items.append(PurchaseItem(product_id=botella.id, qty=50, unit_cost=1.5, sale_price=3))
            db.session.add(p)

        # 4) Venta facturada en la sucursal
        if not db.session.query(Sale).filter_by(customer_name="Cliente Demo").first():
            s = Sale(
                branch_id=tienda.id,
                sale_date=date(2024, 1, 10),
                customer_name="Cliente Demo",
                status=SaleStatus.BILLED,
                total=6,
            )
            s.items.append(SaleItem(product_id=botella.id, qty=2, unit_price=3))
            db.session.add(s)

        names = [curah.name, kiloan.name, botella.name]
        db.session.commit()

        # 5) Ledger + snapshots desde los orígenes
        report = rebuild_all(db.session)

        print("✅ Seed listo.")
        print(f"Movimientos creados: {report.total_created}")
        print(f"Productos: {', '.join(names)}")
        if report.negative_pairs:
            print(f"Stock negativo en (producto, sucursal): {report.negative_pairs}")
    return app


if __name__ == "__main__":
    run()
