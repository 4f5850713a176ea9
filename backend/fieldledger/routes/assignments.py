# backend/fieldledger/routes/assignments.py
"""
Salesman-shopkeeper assignment routes (superadmin managed).
"""
from flask import Blueprint, g, jsonify, request

from fieldledger.decorators import require_role
from fieldledger.errors import PermissionDenied, ValidationError
from fieldledger.models.accounts import ROLE_SALESMAN, ROLE_SHOPKEEPER, ROLE_SUPERADMIN
from fieldledger.schemas import AssignmentRequest, AssignmentUpdate
from fieldledger.services import account_service, assignment_service


assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/assignments")


@assignments_bp.route("", methods=["POST"])
@require_role(ROLE_SUPERADMIN)
def create_assignment():
    """
    Assign a salesman to a shopkeeper.

    Request body: {"salesman_id": int, "shopkeeper_id": int, "notes": str (optional)}

    Returns:
        201: Assignment created
        400: Account missing or wrong role
        409: Active assignment already exists
    """
    payload = AssignmentRequest.from_payload(request.get_json(silent=True))
    assignment = assignment_service.create_assignment(
        payload.salesman_id, payload.shopkeeper_id, g.principal, notes=payload.notes
    )
    return jsonify({"assignment": assignment.to_dict()}), 201


@assignments_bp.route("", methods=["GET"])
@require_role(ROLE_SUPERADMIN)
def list_assignments():
    salesman_id = request.args.get("salesman_id", type=int)
    assignments = assignment_service.list_active_assignments(salesman_id)
    return jsonify({"assignments": [a.to_dict() for a in assignments]}), 200


@assignments_bp.route("/<int:assignment_id>", methods=["PUT"])
@require_role(ROLE_SUPERADMIN)
def update_assignment(assignment_id: int):
    """Request body: {"notes": str, "is_active": bool}"""
    update = AssignmentUpdate.from_payload(request.get_json(silent=True))
    assignment = assignment_service.update_assignment(
        assignment_id, g.principal, notes=update.notes, is_active=update.is_active
    )
    return jsonify({"assignment": assignment.to_dict()}), 200


@assignments_bp.route("/<int:assignment_id>", methods=["DELETE"])
@require_role(ROLE_SUPERADMIN)
def revoke_assignment(assignment_id: int):
    """Soft revoke: the row is kept with is_active=false."""
    assignment = assignment_service.revoke_assignment(assignment_id, g.principal)
    return jsonify({"message": "Assignment revoked", "assignment": assignment.to_dict()}), 200


@assignments_bp.route("/salesman/<int:salesman_id>/shopkeepers", methods=["GET"])
@require_role(ROLE_SALESMAN, ROLE_SUPERADMIN)
def salesman_shopkeepers(salesman_id: int):
    if g.principal.is_salesman and g.principal.id != salesman_id:
        raise PermissionDenied("Salesmen can only list their own shopkeepers")
    shopkeepers = assignment_service.assigned_shopkeepers(salesman_id)
    return jsonify({"shopkeepers": [s.to_dict() for s in shopkeepers]}), 200


@assignments_bp.route("/available/<role>", methods=["GET"])
@require_role(ROLE_SUPERADMIN)
def available_accounts(role: str):
    """Active salesmen or shopkeepers that can take part in an assignment."""
    if role not in (ROLE_SALESMAN, ROLE_SHOPKEEPER):
        raise ValidationError("role must be salesman or shopkeeper", details={"field": "role"})
    accounts = account_service.list_accounts(role)
    return jsonify({"accounts": [a.to_summary() for a in accounts]}), 200
