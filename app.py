from flask import Flask, jsonify, request
from flask_migrate import Migrate
from pydantic import ValidationError

from config import Config
from models import db
from services.errors import StockError


migrate = Migrate()


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    # -------------------------
    # Extensiones
    # -------------------------
    db.init_app(app)
    migrate.init_app(app, db)

    # -------------------------
    # Importar modelos (Alembic)
    # -------------------------
    from models.branch import Branch  # noqa: F401
    from models.product import Product  # noqa: F401
    from models.conversion_transfer import ConversionTransfer  # noqa: F401
    from models.movement import StockMovement, MovementConsumption  # noqa: F401
    from models.stock_snapshot import StockSnapshot  # noqa: F401
    from models.reservation import StockReservation  # noqa: F401
    from models.product_branch_price import ProductBranchPrice  # noqa: F401

    # Orígenes (los escriben los flujos externos)
    from models.purchase import Purchase, PurchaseItem  # noqa: F401
    from models.production import Production, ProductionMaterial  # noqa: F401
    from models.consignment import Consignment, ConsignmentItem, ConsignmentSale  # noqa: F401
    from models.sale import Sale, SaleItem  # noqa: F401
    from models.stock_opname import StockOpname  # noqa: F401
    from models.stock_adjustment import StockAdjustment  # noqa: F401

    # -------------------------
    # Blueprints
    # -------------------------
    from routes.stock import stock_bp
    from routes.reconciliation import reconciliation_bp

    blueprints = [
        stock_bp,
        reconciliation_bp,
    ]

    for bp in blueprints:
        app.register_blueprint(bp)

    # -------------------------
    # Logging + manejo global de errores
    # -------------------------
    import os
    import logging
    from logging.handlers import RotatingFileHandler

    if app.config.get("LOG_TO_FILE", True):
        log_dir = app.config.get("LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "app.log"),
            maxBytes=2_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        ))

        if not any(isinstance(h, RotatingFileHandler) for h in app.logger.handlers):
            app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)

    @app.errorhandler(StockError)
    def _handle_stock_error(e):
        return jsonify({"success": False, "error": str(e), "details": e.to_dict()}), e.status_code

    @app.errorhandler(ValidationError)
    def _handle_validation_error(e):
        return jsonify({
            "success": False,
            "error": "Datos inválidos",
            "details": e.errors(include_url=False, include_context=False),
        }), 400

    @app.errorhandler(404)
    def _handle_404(e):
        return jsonify({"success": False, "error": "No encontrado"}), 404

    @app.errorhandler(500)
    def _handle_500(e):
        app.logger.exception("Error 500 no manejado: %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "Ocurrió un error interno. El problema fue registrado."}), 500

    return app


app = create_app()


if __name__ == "__main__":
    # Debug controlado por config / variables de entorno
    app.run(debug=app.config.get("DEBUG", False))
