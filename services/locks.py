"""
Serialización de escrituras del ledger.

- Un lock por (product_id, branch_id): FIFO y el chequeo de disponible son
  leer-luego-escribir, dos salidas simultáneas del mismo item no pueden cruzarse.
- Además se bloquean las filas de stock_snapshots con SELECT ... FOR UPDATE
  (en Postgres serializa entre procesos; en SQLite no hace nada).
- RebuildGate: las escrituras normales lo toman compartido, el rebuild exclusivo.
"""
import threading
import weakref
from contextlib import contextmanager
from typing import Iterable, Tuple

from sqlalchemy.orm import Session

from models.product import Product
from models.stock_snapshot import StockSnapshot
from services.errors import ProductNotFound, RebuildInProgress

StockKey = Tuple[int, int]  # (product_id, branch_id)


class RebuildGate:
    def __init__(self):
        self._cond = threading.Condition()
        self._writers = 0
        self._rebuilding = False

    @property
    def rebuilding(self) -> bool:
        return self._rebuilding

    @contextmanager
    def shared(self):
        with self._cond:
            if self._rebuilding:
                raise RebuildInProgress()
            self._writers += 1
        try:
            yield
        finally:
            with self._cond:
                self._writers -= 1
                self._cond.notify_all()

    @contextmanager
    def exclusive(self):
        with self._cond:
            if self._rebuilding:
                raise RebuildInProgress("Ya hay un rebuild de stock en curso.")
            self._rebuilding = True
            # esperar a que terminen las escrituras que ya estaban adentro
            while self._writers > 0:
                self._cond.wait()
        try:
            yield
        finally:
            with self._cond:
                self._rebuilding = False
                self._cond.notify_all()


rebuild_gate = RebuildGate()

_registry_lock = threading.Lock()
# sólo viven mientras alguna escritura los tenga tomados
_key_locks = weakref.WeakValueDictionary()


def key_lock(key: StockKey) -> threading.RLock:
    with _registry_lock:
        lock = _key_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _key_locks[key] = lock
        return lock


def get_or_create_snapshot(db: Session, product_id: int, branch_id: int) -> StockSnapshot:
    snap = db.get(StockSnapshot, (product_id, branch_id))
    if not snap:
        snap = StockSnapshot(product_id=product_id, branch_id=branch_id)
        db.add(snap)
        db.flush()
    return snap


def _lock_rows(db: Session, keys) -> None:
    for product_id, branch_id in keys:
        if db.get(Product, product_id) is None:
            raise ProductNotFound(product_id)
        get_or_create_snapshot(db, product_id, branch_id)
        (
            db.query(StockSnapshot)
            .filter_by(product_id=product_id, branch_id=branch_id)
            .with_for_update()
            .one()
        )


@contextmanager
def ledger_write(db: Session, keys: Iterable[StockKey]):
    """
    Unidad de trabajo de una escritura del ledger.
    Commit al salir bien, rollback ante cualquier excepción.
    """
    ordered = sorted({(int(p), int(b)) for p, b in keys})
    with rebuild_gate.shared():
        locks = [key_lock(k) for k in ordered]
        for lock in locks:
            lock.acquire()
        try:
            try:
                _lock_rows(db, ordered)
                yield
                db.commit()
            except Exception:
                db.rollback()
                raise
        finally:
            for lock in reversed(locks):
                lock.release()


@contextmanager
def ledger_rebuild(db: Session):
    """Unidad de trabajo exclusiva para rebuild (wipe + replay en una sola transacción)."""
    with rebuild_gate.exclusive():
        try:
            yield
            db.commit()
        except Exception:
            db.rollback()
            raise
