# backend/fieldledger/routes/distributions.py
"""
Distribution API routes: stock moving admin -> salesman -> shopkeeper.
"""
from flask import Blueprint, current_app, g, jsonify, request

from fieldledger.decorators import require_principal, require_role
from fieldledger.models.accounts import ROLE_ADMIN, ROLE_SALESMAN, ROLE_SUPERADMIN
from fieldledger.models.ledger import DISTRIBUTION_ADMIN_TO_SALESMAN, DISTRIBUTION_SALESMAN_TO_SHOPKEEPER
from fieldledger.schemas import DistributionRequest, DistributionStatusUpdate, list_query
from fieldledger.services import account_service, distribution_service, ledger_service, reporting_service


distributions_bp = Blueprint("distributions", __name__, url_prefix="/api/distribution")


@distributions_bp.route("/admin-to-salesman", methods=["POST"])
@require_role(ROLE_ADMIN, ROLE_SUPERADMIN)
def admin_to_salesman():
    """
    Ship warehouse stock to a salesman.

    Request body:
    {
        "salesman_id": int,
        "product_id": int,
        "quantity": int,
        "unit_price_cents": int,
        "notes": str (optional)
    }

    Returns:
        201: Distribution created, warehouse stock decremented
        403: Salesman not managed by this admin
        409: Insufficient warehouse stock
    """
    payload = DistributionRequest.from_payload(request.get_json(silent=True), DISTRIBUTION_ADMIN_TO_SALESMAN)
    distribution = distribution_service.record_distribution(DISTRIBUTION_ADMIN_TO_SALESMAN, payload, g.principal)
    return jsonify({"distribution": distribution.to_dict()}), 201


@distributions_bp.route("/salesman-to-shopkeeper", methods=["POST"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def salesman_to_shopkeeper():
    """
    Hand salesman stock to an assigned shopkeeper.

    Request body:
    {
        "shopkeeper_id": int,
        "salesman_id": int (required when caller is admin/superadmin),
        "product_id": int,
        "quantity": int,
        "unit_price_cents": int,
        "notes": str (optional)
    }

    Returns:
        201: Distribution created
        403: No active assignment
        409: Insufficient salesman stock
    """
    payload = DistributionRequest.from_payload(request.get_json(silent=True), DISTRIBUTION_SALESMAN_TO_SHOPKEEPER)
    distribution = distribution_service.record_distribution(
        DISTRIBUTION_SALESMAN_TO_SHOPKEEPER, payload, g.principal
    )
    return jsonify({"distribution": distribution.to_dict()}), 201


@distributions_bp.route("", methods=["GET"])
@require_principal
def list_distributions():
    """Query params: type, status, shopkeeper_id, salesman_id, start_date, end_date, page, limit."""
    query = list_query(request.args, current_app.config)
    page = ledger_service.find_distributions(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
        page=query.page,
        limit=query.limit,
    )
    return jsonify(page.to_dict()), 200


@distributions_bp.route("/stats", methods=["GET"])
@require_principal
def distribution_stats():
    query = list_query(request.args, current_app.config)
    stats = reporting_service.distribution_stats(
        ledger_service.EntryFilters(**query.filter_kwargs()),
        account_service.visibility_scope(g.principal),
    )
    return jsonify(stats), 200


@distributions_bp.route("/stock/<int:custodian_id>/<int:product_id>", methods=["GET"])
@require_principal
def custodian_stock(custodian_id: int, product_id: int):
    return jsonify(distribution_service.custodian_stock(custodian_id, product_id, g.principal)), 200


@distributions_bp.route("/<int:distribution_id>", methods=["GET"])
@require_principal
def get_distribution(distribution_id: int):
    distribution = distribution_service.get_distribution(distribution_id, g.principal)
    return jsonify({"distribution": distribution.to_dict()}), 200


@distributions_bp.route("/<int:distribution_id>/status", methods=["PUT"])
@require_role(ROLE_SALESMAN, ROLE_ADMIN, ROLE_SUPERADMIN)
def update_distribution_status(distribution_id: int):
    """
    Transition a pending distribution.

    Request body: {"status": "delivered" | "returned", "notes": str, "return_reason": str}

    Returns:
        200: Updated (a return also restores stock at the source tier)
        409: Distribution is not pending
    """
    update = DistributionStatusUpdate.from_payload(request.get_json(silent=True))
    distribution = distribution_service.update_distribution_status(distribution_id, update, g.principal)
    return jsonify({"distribution": distribution.to_dict()}), 200
