# backend/fieldledger/routes/receipts.py
"""
Receipt routes: printed proof of a recovery.
"""
from flask import Blueprint, current_app, g, jsonify, request

from fieldledger.decorators import require_principal, require_role
from fieldledger.models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SUPERADMIN
from fieldledger.schemas import ReceiptRequest, ReceiptStatusUpdate, list_query
from fieldledger.services import account_service, ledger_service, receipt_service, reporting_service


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


@receipts_bp.route("", methods=["POST"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def create_receipt():
    """
    Request body: {"recovery_id": int, "receipt_content": str, "notes": str (optional)}

    Returns:
        201: Receipt recorded (status printed, or reprinted for later copies)
        409: Recovery has been reversed
    """
    payload = ReceiptRequest.from_payload(request.get_json(silent=True))
    receipt = receipt_service.create_receipt(payload, g.principal)
    return jsonify({"receipt": receipt.to_dict()}), 201


@receipts_bp.route("", methods=["GET"])
@require_principal
def list_receipts():
    query = list_query(request.args, current_app.config, type_param="receipt_type")
    page = ledger_service.find_receipts(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
        page=query.page,
        limit=query.limit,
    )
    return jsonify(page.to_dict()), 200


@receipts_bp.route("/stats/summary", methods=["GET"])
@require_principal
def receipt_stats():
    query = list_query(request.args, current_app.config, type_param="receipt_type")
    stats = reporting_service.receipt_stats(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
    )
    return jsonify(stats), 200


@receipts_bp.route("/<int:receipt_id>", methods=["GET"])
@require_principal
def get_receipt(receipt_id: int):
    receipt = receipt_service.get_receipt(receipt_id, g.principal)
    return jsonify({"receipt": receipt.to_dict()}), 200


@receipts_bp.route("/<int:receipt_id>/status", methods=["PUT"])
@require_role(ROLE_ADMIN, ROLE_SUPERADMIN)
def update_receipt_status(receipt_id: int):
    """Request body: {"status": "printed" | "reprinted" | "void", "notes": str (optional)}"""
    update = ReceiptStatusUpdate.from_payload(request.get_json(silent=True))
    receipt = receipt_service.update_receipt_status(receipt_id, update, g.principal)
    return jsonify({"receipt": receipt.to_dict()}), 200
