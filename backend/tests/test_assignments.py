"""
Assignment tests.

Verifies:
- At most one active assignment per salesman/shopkeeper pair
- Revocation is soft and a revoked pair can be assigned again
- Only superadmins manage assignments over HTTP
"""

import pytest

from conftest import headers_for, principal_for
from fieldledger.errors import ConflictError, InvalidRoleError, NotFoundError, ValidationError
from fieldledger.extensions import db
from fieldledger.models import ShopSalesmanAssignment
from fieldledger.models.accounts import ROLE_SHOPKEEPER
from fieldledger.services import assignment_service


class TestAssignmentService:

    def test_create(self, superadmin, salesman, shopkeeper):
        assignment = assignment_service.create_assignment(
            salesman.id, shopkeeper.id, principal_for(superadmin), notes="north route"
        )

        assert assignment.is_active is True
        assert assignment.assigned_by_id == superadmin.id
        assert assignment.notes == "north route"
        assert assignment_service.require_active_assignment(salesman.id, shopkeeper.id).id == assignment.id

    def test_duplicate_active_pair(self, superadmin, salesman, shopkeeper, assignment):
        with pytest.raises(ConflictError):
            assignment_service.create_assignment(salesman.id, shopkeeper.id, principal_for(superadmin))
        assert db.session.query(ShopSalesmanAssignment).count() == 1

    def test_wrong_roles(self, superadmin, salesman, shopkeeper):
        with pytest.raises(InvalidRoleError):
            assignment_service.create_assignment(shopkeeper.id, shopkeeper.id, principal_for(superadmin))
        with pytest.raises(InvalidRoleError):
            assignment_service.create_assignment(salesman.id, salesman.id, principal_for(superadmin))

    def test_missing_account(self, superadmin, salesman):
        with pytest.raises(ValidationError):
            assignment_service.create_assignment(salesman.id, 99999, principal_for(superadmin))

    def test_revoke_is_soft(self, superadmin, salesman, shopkeeper, assignment):
        revoked = assignment_service.revoke_assignment(assignment.id, principal_for(superadmin))

        assert revoked.is_active is False
        assert revoked.revoked_at is not None
        assert revoked.revoked_by_id == superadmin.id
        assert assignment_service.find_active_assignment(salesman.id, shopkeeper.id) is None
        assert db.session.query(ShopSalesmanAssignment).count() == 1

    def test_reassign_after_revoke(self, superadmin, salesman, shopkeeper, assignment):
        assignment_service.revoke_assignment(assignment.id, principal_for(superadmin))
        fresh = assignment_service.create_assignment(salesman.id, shopkeeper.id, principal_for(superadmin))

        assert fresh.id != assignment.id
        assert fresh.is_active is True

    def test_reactivate_conflicts_with_newer_assignment(self, superadmin, salesman, shopkeeper, assignment):
        assignment_service.revoke_assignment(assignment.id, principal_for(superadmin))
        assignment_service.create_assignment(salesman.id, shopkeeper.id, principal_for(superadmin))

        with pytest.raises(ConflictError):
            assignment_service.update_assignment(assignment.id, principal_for(superadmin), is_active=True)

    def test_reactivate(self, superadmin, salesman, shopkeeper, assignment):
        assignment_service.revoke_assignment(assignment.id, principal_for(superadmin))
        restored = assignment_service.update_assignment(assignment.id, principal_for(superadmin), is_active=True)

        assert restored.is_active is True
        assert restored.revoked_at is None

    def test_unknown_assignment(self, superadmin):
        with pytest.raises(NotFoundError):
            assignment_service.revoke_assignment(424242, principal_for(superadmin))

    def test_assigned_shopkeepers(self, make_account, superadmin, salesman, shopkeeper, assignment):
        second = make_account(ROLE_SHOPKEEPER)
        assignment_service.create_assignment(salesman.id, second.id, principal_for(superadmin))

        ids = {s.id for s in assignment_service.assigned_shopkeepers(salesman.id)}
        assert ids == {shopkeeper.id, second.id}


class TestAssignmentRoutes:

    def test_create_via_api(self, client, superadmin, salesman, shopkeeper):
        resp = client.post(
            "/api/assignments",
            json={"salesman_id": salesman.id, "shopkeeper_id": shopkeeper.id},
            headers=headers_for(superadmin),
        )

        assert resp.status_code == 201
        body = resp.get_json()["assignment"]
        assert body["salesman_id"] == salesman.id
        assert body["is_active"] is True

    def test_duplicate_via_api(self, client, superadmin, salesman, shopkeeper, assignment):
        resp = client.post(
            "/api/assignments",
            json={"salesman_id": salesman.id, "shopkeeper_id": shopkeeper.id},
            headers=headers_for(superadmin),
        )

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "conflict"

    @pytest.mark.parametrize("who", ["admin", "salesman", "shopkeeper"])
    def test_only_superadmin_creates(self, request, client, salesman, shopkeeper, who):
        caller = request.getfixturevalue(who)
        resp = client.post(
            "/api/assignments",
            json={"salesman_id": salesman.id, "shopkeeper_id": shopkeeper.id},
            headers=headers_for(caller),
        )
        assert resp.status_code == 403

    def test_revoke_via_api(self, client, superadmin, assignment):
        resp = client.delete(f"/api/assignments/{assignment.id}", headers=headers_for(superadmin))

        assert resp.status_code == 200
        assert resp.get_json()["assignment"]["is_active"] is False

    def test_salesman_lists_own_shopkeepers(self, client, salesman, shopkeeper, assignment):
        resp = client.get(f"/api/assignments/salesman/{salesman.id}/shopkeepers", headers=headers_for(salesman))

        assert resp.status_code == 200
        assert [s["id"] for s in resp.get_json()["shopkeepers"]] == [shopkeeper.id]

    def test_available_rejects_other_roles(self, client, superadmin):
        resp = client.get("/api/assignments/available/admin", headers=headers_for(superadmin))
        assert resp.status_code == 400
