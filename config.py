import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret_key_change_me")

    # SQLite local por defecto
    DB_PATH = os.environ.get("DB_PATH", os.path.join(basedir, "stock.db"))
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{DB_PATH}")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Costo representativo del snapshot: weighted_remaining | latest_layer
    STOCK_COST_STRATEGY = os.environ.get("STOCK_COST_STRATEGY", "weighted_remaining")

    STOCK_LOW_THRESHOLD = float(os.environ.get("STOCK_LOW_THRESHOLD", "10"))
    STOCK_PAGE_SIZE = int(os.environ.get("STOCK_PAGE_SIZE", "10"))

    # Opname con |diferencia| menor a esto no genera movimiento
    OPNAME_TOLERANCE = float(os.environ.get("OPNAME_TOLERANCE", "0.01"))

    LOG_DIR = os.environ.get("LOG_DIR", os.path.join(basedir, "logs"))
    LOG_TO_FILE = _env_bool("LOG_TO_FILE", True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_TO_FILE = False
    STOCK_COST_STRATEGY = "weighted_remaining"
