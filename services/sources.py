"""
Lectura de las transacciones de origen (compras, producción, consignación,
ventas, opname, ajustes manuales, unloading) convertidas en eventos del ledger.

Cada loader devuelve (eventos, omitidos) en orden (fecha, id). Los registros
que no forman un evento válido se omiten con el motivo, nunca se inventan.
"""
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple

from flask import current_app
from pydantic import ValidationError
from sqlalchemy.orm import Session

from models.consignment import Consignment, ConsignmentItem, ConsignmentSale
from models.conversion_transfer import ConversionTransfer
from models.movement import SourceType
from models.product import Product
from models.production import Production, ProductionMaterial, ProductionStatus
from models.purchase import Purchase, PurchaseItem, PurchaseStatus
from models.sale import Sale, SaleItem, SaleStatus
from models.stock_adjustment import StockAdjustment
from models.stock_opname import OpnameStatus, StockOpname
from schemas.events import StockEvent, parse_event
from schemas.reports import SkippedSource
from services.quantities import to_decimal

Loaded = Tuple[List[StockEvent], List[SkippedSource]]


class _Collector:
    def __init__(self, db: Session):
        self.db = db
        self.events: List[StockEvent] = []
        self.skipped: List[SkippedSource] = []
        self._products = {}

    def _product_exists(self, product_id) -> bool:
        if product_id not in self._products:
            self._products[product_id] = self.db.get(Product, product_id) is not None
        return self._products[product_id]

    def skip(self, source_type: str, source_id: int, reason: str) -> None:
        self.skipped.append(SkippedSource(source_type=source_type, source_id=source_id, reason=reason))

    def add(self, source_type: str, source_id: int, payload: dict) -> None:
        if not self._product_exists(payload.get("product_id")):
            self.skip(source_type, source_id, f"producto inexistente ({payload.get('product_id')})")
            return
        try:
            self.events.append(parse_event(payload))
        except ValidationError as e:
            reasons = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            self.skip(source_type, source_id, reasons)

    def result(self) -> Loaded:
        return self.events, self.skipped


def _filter_ids(q, column, source_ids):
    if source_ids is not None:
        q = q.filter(column.in_(list(source_ids)))
    return q


def purchase_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    q = (
        db.query(PurchaseItem, Purchase)
        .join(Purchase, Purchase.id == PurchaseItem.purchase_id)
        .filter(Purchase.status == PurchaseStatus.RECEIVED)
    )
    q = _filter_ids(q, PurchaseItem.id, source_ids)
    for item, purchase in q.order_by(Purchase.purchase_date.asc(), PurchaseItem.id.asc()).all():
        c.add(SourceType.PURCHASE, item.id, {
            "kind": "purchase_receipt",
            "source_id": item.id,
            "purchase_id": purchase.id,
            "product_id": item.product_id,
            "branch_id": purchase.branch_id,
            "date": purchase.purchase_date,
            "quantity": item.qty,
            "unit_cost": item.unit_cost,
            "sale_price": item.sale_price,
        })
    return c.result()


def production_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    q = db.query(Production).filter(Production.status == ProductionStatus.POSTED)
    q = _filter_ids(q, Production.id, source_ids)
    for p in q.order_by(Production.production_date.asc(), Production.id.asc()).all():
        c.add(SourceType.PRODUCTION, p.id, {
            "kind": "production_output",
            "source_id": p.id,
            "production_id": p.id,
            "product_id": p.product_id,
            "branch_id": p.branch_id,
            "date": p.production_date,
            "quantity": p.qty,
            "unit_cost": p.unit_cost,
        })
    return c.result()


def consignment_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    q = (
        db.query(ConsignmentSale, ConsignmentItem, Consignment)
        .outerjoin(ConsignmentItem, ConsignmentItem.id == ConsignmentSale.consignment_item_id)
        .outerjoin(Consignment, Consignment.id == ConsignmentItem.consignment_id)
    )
    q = _filter_ids(q, ConsignmentSale.id, source_ids)
    for sale, item, consignment in q.order_by(ConsignmentSale.sale_date.asc(), ConsignmentSale.id.asc()).all():
        if item is None or consignment is None:
            c.skip(SourceType.CONSIGNMENT, sale.id, "venta de consignación sin detalle")
            continue
        c.add(SourceType.CONSIGNMENT, sale.id, {
            "kind": "consignment_sale",
            "source_id": sale.id,
            "consignment_id": consignment.id,
            "product_id": item.product_id,
            "branch_id": consignment.branch_id,
            "date": sale.sale_date,
            "quantity": sale.qty_sold,
            "sale_price": item.unit_price,
        })
    return c.result()


def sale_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    q = (
        db.query(SaleItem, Sale)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.status.in_(list(SaleStatus.FINALIZED)))
    )
    q = _filter_ids(q, SaleItem.id, source_ids)
    for item, sale in q.order_by(Sale.sale_date.asc(), SaleItem.id.asc()).all():
        c.add(SourceType.SALE, item.id, {
            "kind": "sale_line",
            "source_id": item.id,
            "sale_id": sale.id,
            "product_id": item.product_id,
            "branch_id": sale.branch_id,
            "date": sale.sale_date,
            "quantity": item.qty,
            "sale_price": item.unit_price,
        })
    return c.result()


def opname_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    tolerance = to_decimal(current_app.config.get("OPNAME_TOLERANCE", Decimal("0.01")))
    q = db.query(StockOpname).filter(StockOpname.status == OpnameStatus.APPROVED)
    q = _filter_ids(q, StockOpname.id, source_ids)
    for o in q.order_by(StockOpname.opname_date.asc(), StockOpname.id.asc()).all():
        diff = to_decimal(o.difference)
        if abs(diff) < tolerance:
            c.skip(SourceType.OPNAME, o.id, f"diferencia {diff} bajo la tolerancia")
            continue
        c.add(SourceType.OPNAME, o.id, {
            "kind": "opname_adjustment",
            "source_id": o.id,
            "product_id": o.product_id,
            "branch_id": o.branch_id,
            "date": o.opname_date,
            "difference": diff,
            "note": o.note,
        })
    return c.result()


def adjustment_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    q = _filter_ids(db.query(StockAdjustment), StockAdjustment.id, source_ids)
    for a in q.order_by(StockAdjustment.adjustment_date.asc(), StockAdjustment.id.asc()).all():
        c.add(SourceType.ADJUSTMENT, a.id, {
            "kind": "stock_adjustment",
            "source_id": a.id,
            "product_id": a.product_id,
            "branch_id": a.branch_id,
            "date": a.adjustment_date,
            "difference": to_decimal(a.difference),
            "unit_cost": a.unit_cost,
            "note": a.note,
        })
    return c.result()


def production_material_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    c = _Collector(db)
    q = (
        db.query(ProductionMaterial, Production)
        .join(Production, Production.id == ProductionMaterial.production_id)
        .filter(Production.status == ProductionStatus.POSTED)
    )
    q = _filter_ids(q, ProductionMaterial.id, source_ids)
    for m, p in q.order_by(Production.production_date.asc(), ProductionMaterial.id.asc()).all():
        c.add(SourceType.PRODUCTION_MATERIAL, m.id, {
            "kind": "production_material",
            "source_id": m.id,
            "production_id": p.id,
            "product_id": m.product_id,
            "branch_id": p.branch_id,
            "date": p.production_date,
            "quantity": m.qty,
        })
    return c.result()


def transfer_events(db: Session, source_ids: Optional[Iterable[int]] = None) -> Loaded:
    """Por cada unloading: primero la salida del origen, después la entrada del destino."""
    c = _Collector(db)
    q = db.query(ConversionTransfer)
    q = _filter_ids(q, ConversionTransfer.id, source_ids)
    for t in q.order_by(ConversionTransfer.transfer_date.asc(), ConversionTransfer.id.asc()).all():
        common = {
            "kind": "conversion_leg",
            "source_id": t.id,
            "transfer_id": t.id,
            "branch_id": t.branch_id,
            "date": t.transfer_date,
            "note": t.note,
        }
        c.add(SourceType.TRANSFER_OUT, t.id, dict(
            common, leg="OUT", product_id=t.source_product_id, quantity=t.input_quantity,
        ))
        c.add(SourceType.TRANSFER_IN, t.id, dict(
            common, leg="IN", product_id=t.target_product_id, quantity=t.output_quantity,
            unit_cost=t.target_unit_cost,
        ))
    return c.result()


# Orden fijo del replay. Igual en cada corrida.
# Los unloading van antes de las salidas: el producto destino se vende después de convertirse.
REPLAY_ORDER: List[Tuple[Tuple[str, ...], Callable[..., Loaded]]] = [
    ((SourceType.PURCHASE,), purchase_events),
    ((SourceType.PRODUCTION,), production_events),
    ((SourceType.TRANSFER_OUT, SourceType.TRANSFER_IN), transfer_events),
    ((SourceType.CONSIGNMENT,), consignment_events),
    ((SourceType.SALE,), sale_events),
    ((SourceType.OPNAME,), opname_events),
    ((SourceType.ADJUSTMENT,), adjustment_events),
    ((SourceType.PRODUCTION_MATERIAL,), production_material_events),
]

REPLAY_SOURCE_TYPES: List[str] = [st for types, _ in REPLAY_ORDER for st in types]


def collect_events(db: Session) -> Loaded:
    events: List[StockEvent] = []
    skipped: List[SkippedSource] = []
    for _, loader in REPLAY_ORDER:
        ev, sk = loader(db)
        events.extend(ev)
        skipped.extend(sk)
    for s in skipped:
        current_app.logger.warning("Origen omitido %s #%s: %s", s.source_type, s.source_id, s.reason)
    return events, skipped


def find_event(db: Session, source_type: str, source_id: int) -> Optional[StockEvent]:
    """Reconstruye el evento de una transacción puntual (None si ya no es válida)."""
    for types, loader in REPLAY_ORDER:
        if source_type in types:
            events, _ = loader(db, source_ids=[source_id])
            for ev in events:
                if ev.source_type == source_type and ev.source_id == source_id:
                    return ev
            return None
    raise ValueError(f"source_type sin origen reconstruible: {source_type}")
