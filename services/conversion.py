"""
Unloading: conversión de un producto a otro dentro de la misma sucursal
(ej. curah en KG -> kiloan en ML), con densidad cuando cambian las unidades.
"""
import uuid
from datetime import date as date_type
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.orm import Session

from models.conversion_transfer import ConversionKind, ConversionTransfer
from models.movement import SourceType, StockMovement
from models.product import Product, ProductUnit
from services.aggregator import recompute_many
from services.errors import (
    ConversionNotSupported,
    DensityNotConfigured,
    DuplicateTransferPair,
    InvalidQuantity,
    TransferNotFound,
)
from services.locks import ledger_write
from services.quantities import QTY, to_decimal, to_qty
from services.stock import get_product, add_stock, current_cost_basis, remove_stock, reverse_movements


def convert_quantity(qty, source: Product, target: Product) -> Tuple[Decimal, str, Optional[Decimal]]:
    """
    Devuelve (cantidad_destino, tipo_conversión, densidad usada).

    KG -> ML: qty / densidad * 1000
    ML -> KG: qty / 1000 * densidad
    La densidad (kg/L) es la del producto origen.
    """
    q = to_qty(qty)
    if source.unit == target.unit:
        return q, ConversionKind.SAME_UNIT, None

    if source.unit in ProductUnit.MASS and target.unit in ProductUnit.VOLUME:
        kind = ConversionKind.MASS_TO_VOLUME
    elif source.unit in ProductUnit.VOLUME and target.unit in ProductUnit.MASS:
        kind = ConversionKind.VOLUME_TO_MASS
    else:
        raise ConversionNotSupported(
            f"No se puede convertir {source.unit} a {target.unit} ({source.name} -> {target.name})"
        )

    if not source.has_density:
        raise DensityNotConfigured(product_id=source.id, product_name=source.name)

    density = to_decimal(source.density_kg_per_liter)
    if kind == ConversionKind.MASS_TO_VOLUME:
        out = q / density * 1000
    else:
        out = q / 1000 * density
    return out.quantize(QTY), kind, density


def _post_transfer(
    db: Session,
    *,
    branch_id: int,
    source_product_id: int,
    target_product_id: int,
    date: date_type,
    input_quantity,
    note: Optional[str] = None,
    batch_id: Optional[str] = None,
) -> ConversionTransfer:
    if source_product_id == target_product_id:
        raise ConversionNotSupported("El producto origen y destino no pueden ser el mismo")

    source = get_product(db, source_product_id)
    target = get_product(db, target_product_id)

    q = to_qty(input_quantity)
    if q <= 0:
        raise InvalidQuantity(input_quantity)

    output, kind, density = convert_quantity(q, source, target)
    if output <= 0:
        raise InvalidQuantity(output)

    # el destino entra al costo actual del destino (antes de esta entrada)
    target_cost = current_cost_basis(db, target.id, branch_id)

    t = ConversionTransfer(
        batch_id=batch_id,
        branch_id=branch_id,
        source_product_id=source.id,
        target_product_id=target.id,
        transfer_date=date,
        input_quantity=q,
        input_unit=source.unit,
        output_quantity=output,
        output_unit=target.unit,
        density_factor=density,
        conversion_kind=kind,
        target_unit_cost=target_cost,
        note=note,
    )
    db.add(t)
    db.flush()

    _, result = remove_stock(
        db,
        product_id=source.id,
        branch_id=branch_id,
        qty=q,
        date=date,
        source_type=SourceType.TRANSFER_OUT,
        source_id=t.id,
        source_group_id=t.id,
        transfer_id=t.id,
        note=note,
    )
    t.cost_of_goods = result.cost_of_goods

    add_stock(
        db,
        product_id=target.id,
        branch_id=branch_id,
        qty=output,
        date=date,
        unit_cost=target_cost,
        source_type=SourceType.TRANSFER_IN,
        source_id=t.id,
        source_group_id=t.id,
        transfer_id=t.id,
        note=note,
    )
    db.flush()
    return t


def transfer(
    db: Session,
    *,
    source_product_id: int,
    target_product_id: int,
    branch_id: int,
    date: date_type,
    input_quantity,
    note: Optional[str] = None,
) -> dict:
    """Salida del origen + entrada del destino, juntas o ninguna."""
    keys = [(source_product_id, branch_id), (target_product_id, branch_id)]
    with ledger_write(db, keys):
        t = _post_transfer(
            db,
            branch_id=branch_id,
            source_product_id=source_product_id,
            target_product_id=target_product_id,
            date=date,
            input_quantity=input_quantity,
            note=note,
        )
        recompute_many(db, keys)
        payload = t.to_dict()

    current_app.logger.info(
        "Unloading #%s: %s %s -> %s %s (branch=%s)",
        payload["id"], payload["input_quantity"], payload["input_unit"],
        payload["output_quantity"], payload["output_unit"], branch_id,
    )
    return payload


def transfer_batch(db: Session, *, branch_id: int, date: date_type, items: Iterable[dict]) -> dict:
    """
    Varios unloadings en un solo envío. Un par (origen, destino) repetido
    dentro del mismo lote se rechaza antes de escribir nada.
    """
    items = list(items)
    if not items:
        raise InvalidQuantity(0)

    seen = set()
    keys = set()
    for it in items:
        pair = (int(it["source_product_id"]), int(it["target_product_id"]))
        if pair in seen:
            raise DuplicateTransferPair(*pair)
        seen.add(pair)
        keys.add((pair[0], branch_id))
        keys.add((pair[1], branch_id))

    batch_id = uuid.uuid4().hex
    with ledger_write(db, keys):
        transfers: List[ConversionTransfer] = []
        for it in items:
            transfers.append(_post_transfer(
                db,
                branch_id=branch_id,
                source_product_id=int(it["source_product_id"]),
                target_product_id=int(it["target_product_id"]),
                date=date,
                input_quantity=it.get("input_quantity"),
                note=it.get("note"),
                batch_id=batch_id,
            ))
        recompute_many(db, keys)
        payload = {"batch_id": batch_id, "transfers": [t.to_dict() for t in transfers]}

    current_app.logger.info("Unloading lote %s: %s item(s) (branch=%s)", batch_id, len(items), branch_id)
    return payload


def reverse_transfer(db: Session, transfer_id: int) -> dict:
    """Revierte las dos patas juntas. Si el destino ya se consumió: LayerInUse."""
    t = db.get(ConversionTransfer, transfer_id)
    if not t:
        raise TransferNotFound(transfer_id)

    keys = [(t.source_product_id, t.branch_id), (t.target_product_id, t.branch_id)]
    with ledger_write(db, keys):
        movements = db.query(StockMovement).filter(StockMovement.transfer_id == t.id).all()
        reverse_movements(db, movements)
        db.delete(t)
        db.flush()
        recompute_many(db, keys)

    current_app.logger.info("Unloading #%s revertido (%s movimiento(s))", transfer_id, len(movements))
    return {"reversed": len(movements), "transfer_id": transfer_id, "keys": sorted(set(keys))}
