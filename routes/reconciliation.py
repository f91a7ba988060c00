from flask import Blueprint, jsonify, request

from models import db
from schemas.requests import PairRequest, RebuildRequest
from services import reconciliation

reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/stock/reconciliation")


@reconciliation_bp.post("/rebuild")
def rebuild():
    """
    mode=check: cuenta lo que se crearía, sin tocar el ledger.
    mode=reset: borra ledger + snapshots y rehace desde los orígenes.
    """
    body = RebuildRequest.model_validate(request.get_json(silent=True) or {})
    report = reconciliation.rebuild_all(db.session, dry_run=body.mode == "check")
    return jsonify({"success": True, "mode": body.mode, **report.model_dump(mode="json")})


@reconciliation_bp.get("/discrepancies")
def discrepancies():
    report = reconciliation.check_discrepancies(db.session)
    return jsonify({
        "success": True,
        "total_missing": report.total_missing,
        "is_clean": report.is_clean,
        **report.model_dump(mode="json"),
    })


@reconciliation_bp.post("/fix")
def fix():
    result = reconciliation.fix(db.session)
    return jsonify({"success": True, "total_inserted": result.total_inserted, **result.model_dump(mode="json")})


@reconciliation_bp.post("/delete-all")
def delete_all():
    body = PairRequest.model_validate(request.get_json(silent=True) or {})
    result = reconciliation.delete_all_for(db.session, body.product_id, body.branch_id)
    return jsonify({"success": True, **result})
