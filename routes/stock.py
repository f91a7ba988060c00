from datetime import date, datetime

from flask import Blueprint, jsonify, request

from models import db
from schemas.requests import (
    AdjustRequest,
    ConversionRequest,
    PriceUpdateRequest,
    ReservationRequest,
    ReverseRequest,
)
from services import conversion, ledger, reservation
from services.adjustment import adjust_to
from services.pricing import update_price
from services.aggregator import movement_history, query_stock

stock_bp = Blueprint("stock", __name__, url_prefix="/stock")


def _parse_date(s: str | None, default: date | None = None) -> date | None:
    if not s:
        return default
    try:
        return datetime.strptime(s.strip(), "%Y-%m-%d").date()
    except ValueError:
        return default


def _int_arg(name: str) -> int | None:
    return request.args.get(name, type=int)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


@stock_bp.get("/")
def overview():
    """
    Stock actual y valorización.
    Sin branch_id: una fila por (producto, sucursal), nunca sumado entre sucursales.
    """
    data = query_stock(
        db.session,
        product_id=_int_arg("product_id"),
        branch_id=_int_arg("branch_id"),
        search=request.args.get("q"),
        page=request.args.get("page", 1),
        per_page=request.args.get("per_page"),
    )
    return jsonify(data)


@stock_bp.get("/history")
def history():
    product_id = _int_arg("product_id")
    branch_id = _int_arg("branch_id")
    if not product_id or not branch_id:
        return jsonify({"success": False, "error": "product_id y branch_id son requeridos"}), 400

    data = movement_history(
        db.session,
        product_id=product_id,
        branch_id=branch_id,
        date_from=_parse_date(request.args.get("date_from")),
        date_to=_parse_date(request.args.get("date_to")),
    )
    return jsonify(data)


@stock_bp.post("/events")
def post_event():
    payload = dict(_json_body())
    allow_negative = bool(payload.pop("allow_negative", False))
    result = ledger.apply_event(db.session, payload, allow_negative=allow_negative)
    return jsonify({"success": True, **result}), 201


@stock_bp.post("/reverse")
def post_reverse():
    body = ReverseRequest.model_validate(_json_body())
    result = ledger.reverse(
        db.session, source_type=body.source_type, source_id=body.source_id, group_id=body.group_id
    )
    return jsonify({"success": True, **result})


@stock_bp.post("/adjustments")
def post_adjustment():
    """Lleva el stock de (producto, sucursal) a un valor absoluto."""
    body = AdjustRequest.model_validate(_json_body())
    result = adjust_to(
        db.session,
        product_id=body.product_id,
        branch_id=body.branch_id,
        new_qty=body.new_qty,
        date=body.date,
        unit_cost=body.unit_cost,
        note=body.note,
    )
    return jsonify({"success": True, **result}), 201 if result["changed"] else 200


@stock_bp.post("/prices")
def post_price():
    body = PriceUpdateRequest.model_validate(_json_body())
    result = update_price(
        db.session,
        product_id=body.product_id,
        branch_id=body.branch_id or None,
        unit_cost=body.unit_cost,
        sale_price=body.sale_price,
    )
    return jsonify({"success": True, **result})


@stock_bp.get("/reservations")
def get_reservation():
    product_id = _int_arg("product_id")
    branch_id = _int_arg("branch_id")
    if not product_id or not branch_id:
        return jsonify({"success": False, "error": "product_id y branch_id son requeridos"}), 400
    return jsonify(reservation.get_state(db.session, product_id, branch_id).to_dict())


@stock_bp.post("/reservations/<action>")
def post_reservation(action: str):
    body = ReservationRequest.model_validate(_json_body())

    if action == "reserve":
        state = reservation.reserve(db.session, product_id=body.product_id, branch_id=body.branch_id, qty=body.qty)
        return jsonify({"success": True, **state.to_dict()})

    if action == "release":
        state = reservation.release(db.session, product_id=body.product_id, branch_id=body.branch_id, qty=body.qty)
        return jsonify({"success": True, **state.to_dict()})

    if action == "commit":
        extra = {"source_type": body.source_type} if body.source_type else {}
        result = reservation.commit(
            db.session,
            product_id=body.product_id,
            branch_id=body.branch_id,
            qty=body.qty,
            date=body.date or date.today(),
            sale_price=body.sale_price,
            source_id=body.source_id,
            source_group_id=body.source_group_id,
            note=body.note,
            **extra,
        )
        return jsonify({"success": True, **result}), 201

    return jsonify({"success": False, "error": f"Acción inválida: {action}"}), 404


@stock_bp.post("/conversions")
def post_conversion():
    """Unloading: uno o varios items en el mismo envío (atómico)."""
    body = ConversionRequest.model_validate(_json_body())

    if len(body.items) == 1:
        it = body.items[0]
        result = conversion.transfer(
            db.session,
            source_product_id=it.source_product_id,
            target_product_id=it.target_product_id,
            branch_id=body.branch_id,
            date=body.date,
            input_quantity=it.input_quantity,
            note=it.note,
        )
        return jsonify({"success": True, "transfers": [result]}), 201

    result = conversion.transfer_batch(
        db.session,
        branch_id=body.branch_id,
        date=body.date,
        items=[it.model_dump() for it in body.items],
    )
    return jsonify({"success": True, **result}), 201


@stock_bp.delete("/conversions/<int:transfer_id>")
def delete_conversion(transfer_id: int):
    result = conversion.reverse_transfer(db.session, transfer_id)
    return jsonify({"success": True, **result})
