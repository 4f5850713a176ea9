# backend/fieldledger/routes/sales.py
"""
Sales routes: commission-bearing sale records and their reports.
"""
from flask import Blueprint, current_app, g, jsonify, request

from fieldledger.decorators import require_principal, require_role
from fieldledger.models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SUPERADMIN
from fieldledger.schemas import SalePaymentUpdate, SaleRequest, list_query
from fieldledger.services import account_service, ledger_service, reporting_service, sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.route("/record", methods=["POST"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def record_sale():
    """
    Request body:
    {
        "shopkeeper_id": int,
        "product_id": int,
        "quantity": int,
        "unit_price_cents": int,
        "payment_method": "cash" | "bank_transfer" | "cheque" | "upi" (optional),
        "salesman_id": int (admins and superadmins only),
        "sale_date": ISO-8601 (optional),
        "notes": str (optional)
    }

    Returns:
        201: Sale recorded with commission at the salesman's current rate
        403: Salesman is not assigned to the shopkeeper
    """
    payload = SaleRequest.from_payload(request.get_json(silent=True))
    sale = sales_service.record_sale(payload, g.principal)
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.route("", methods=["GET"])
@require_principal
def list_sales():
    """Filters: salesman_id, shopkeeper_id, status (payment status), payment_method, start_date, end_date."""
    query = list_query(request.args, current_app.config, type_param="payment_method")
    page = ledger_service.find_sales(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
        page=query.page,
        limit=query.limit,
    )
    return jsonify(page.to_dict()), 200


@sales_bp.route("/stats", methods=["GET"])
@require_principal
def sale_stats():
    query = list_query(request.args, current_app.config, type_param="payment_method")
    stats = reporting_service.sale_stats(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
    )
    return jsonify(stats), 200


@sales_bp.route("/profit-loss", methods=["GET"])
@require_role(ROLE_SUPERADMIN)
def profit_loss():
    query = list_query(request.args, current_app.config, type_param="payment_method")
    result = reporting_service.profit_loss(ledger_service.EntryFilters(**query.filter_kwargs()))
    return jsonify({"profit_loss": result}), 200


@sales_bp.route("/<int:sale_id>", methods=["GET"])
@require_principal
def get_sale(sale_id: int):
    sale = sales_service.get_sale(sale_id, g.principal)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.route("/<int:sale_id>/payment-status", methods=["PUT"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def update_payment_status(sale_id: int):
    """Request body: {"payment_status": "pending" | "paid" | "partial", "payment_method": str (optional), "notes": str (optional)}"""
    update = SalePaymentUpdate.from_payload(request.get_json(silent=True))
    sale = sales_service.update_payment_status(sale_id, update, g.principal)
    return jsonify({"sale": sale.to_dict()}), 200
