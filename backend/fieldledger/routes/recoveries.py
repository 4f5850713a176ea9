# backend/fieldledger/routes/recoveries.py
"""
Recovery API routes: cash (and goods) collection against shopkeeper balances.

Domain errors propagate to the LedgerError handler registered in create_app.
"""
from flask import Blueprint, current_app, g, jsonify, request

from fieldledger.decorators import require_principal, require_role
from fieldledger.models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SUPERADMIN
from fieldledger.schemas import RecoveryRequest, RecoveryUpdate, list_query
from fieldledger.services import account_service, balance_service, ledger_service, reporting_service


recoveries_bp = Blueprint("recoveries", __name__, url_prefix="/api/recoveries")


@recoveries_bp.route("", methods=["POST"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def create_recovery():
    """
    Record a recovery.

    Request body:
    {
        "shopkeeper_id": int,
        "salesman_id": int (required when caller is admin/superadmin),
        "recovery_type": "payment_only" | "payment_with_items",
        "amount_collected_cents": int,
        "payment_method": "cash" | "bank_transfer" | "cheque" | "upi" | "other",
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int}],
        "notes", "recovery_location", "receipt_number": str (optional),
        "recovery_date": ISO-8601 (optional),
        "bank_details": {"bank_name", "account_number", "transaction_id", "cheque_number"} (optional)
    }

    Returns:
        201: Recovery recorded (includes net_payment_cents / new_pending_amount_cents)
        400: Invalid request or wrong role
        403: Not assigned to this shopkeeper
        409: Insufficient stock for an item
    """
    payload = RecoveryRequest.from_payload(request.get_json(silent=True))
    recovery = balance_service.record_recovery(payload, g.principal)
    return jsonify({"recovery": recovery.to_dict()}), 201


@recoveries_bp.route("", methods=["GET"])
@require_principal
def list_recoveries():
    """
    List recoveries visible to the caller, newest first.

    Query params: shopkeeper_id, salesman_id, status, recovery_type,
    start_date, end_date, page, limit.
    """
    query = list_query(request.args, current_app.config, type_param="recovery_type")
    page = ledger_service.find_recoveries(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
        page=query.page,
        limit=query.limit,
    )
    return jsonify(page.to_dict()), 200


@recoveries_bp.route("/stats/summary", methods=["GET"])
@require_principal
def recovery_stats():
    """Totals and per-type / per-method breakdown. Cancelled recoveries are excluded unless status is given."""
    query = list_query(request.args, current_app.config, type_param="recovery_type")
    stats = reporting_service.recovery_stats(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
    )
    return jsonify(stats), 200


@recoveries_bp.route("/shopkeepers/<int:salesman_id>", methods=["GET"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def shopkeepers_with_pending(salesman_id: int):
    """Assigned shopkeepers of the salesman with pending_amount_cents > 0."""
    shopkeepers = balance_service.shopkeepers_with_pending(salesman_id, g.principal)
    return jsonify({"shopkeepers": shopkeepers}), 200


@recoveries_bp.route("/<int:recovery_id>", methods=["GET"])
@require_principal
def get_recovery(recovery_id: int):
    recovery = balance_service.get_recovery(recovery_id, g.principal)
    return jsonify({"recovery": recovery.to_dict()}), 200


@recoveries_bp.route("/<int:recovery_id>", methods=["PUT"])
@require_role(ROLE_ADMIN, ROLE_SUPERADMIN)
def update_recovery(recovery_id: int):
    """
    Update notes and pending/completed status.

    Request body: {"status": "pending" | "completed", "notes": str}

    Returns:
        200: Updated
        400: Field not allowed / cancelled requested
        409: Recovery already reversed
    """
    update = RecoveryUpdate.from_payload(request.get_json(silent=True))
    recovery = balance_service.update_recovery(recovery_id, update, g.principal)
    return jsonify({"recovery": recovery.to_dict()}), 200


@recoveries_bp.route("/<int:recovery_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN, ROLE_SUPERADMIN)
def delete_recovery(recovery_id: int):
    """
    Reverse a recovery: items go back to the salesman, net payment is added
    back to the shopkeeper's pending amount. The record is kept as cancelled.

    Returns:
        200: Reversed
        404: Not found
        500: Already reversed (consistency_error)
    """
    recovery = balance_service.reverse_recovery(recovery_id, g.principal)
    return jsonify({"message": "Recovery reversed", "recovery": recovery.to_dict()}), 200
