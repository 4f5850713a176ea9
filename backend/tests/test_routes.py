"""
HTTP boundary tests.

Verifies:
- 401 without a usable principal, 403 for the wrong role
- Every domain error renders as {"error": {code, message, details}}
- Internal failures never leak their detail
- Oversized integers are rejected as 400/401/404, never a 500
- List endpoints paginate newest first
"""

import pytest

from conftest import headers_for
from fieldledger.extensions import db
from fieldledger.models import Account


def post_recovery(client, caller, shopkeeper, amount=300, **extra):
    body = {
        "shopkeeper_id": shopkeeper.id,
        "recovery_type": "payment_only",
        "amount_collected_cents": amount,
        "payment_method": "cash",
    }
    body.update(extra)
    return client.post("/api/recoveries", json=body, headers=headers_for(caller))


class TestAuthentication:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/recoveries"),
            ("POST", "/api/recoveries"),
            ("GET", "/api/distribution"),
            ("POST", "/api/distribution/admin-to-salesman"),
            ("GET", "/api/assignments"),
            ("GET", "/api/receipts"),
        ],
    )
    def test_requires_principal(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "unauthenticated"

    def test_unknown_principal(self, client, db_session):
        resp = client.get("/api/recoveries", headers={"X-Principal-Id": "99999"})
        assert resp.status_code == 401

    def test_inactive_principal(self, client, salesman):
        salesman.is_active = False
        db.session.commit()

        resp = client.get("/api/recoveries", headers=headers_for(salesman))
        assert resp.status_code == 401

    def test_wrong_role(self, client, shopkeeper):
        resp = post_recovery(client, shopkeeper, shopkeeper)

        assert resp.status_code == 403
        error = resp.get_json()["error"]
        assert error["code"] == "permission_denied"
        assert error["details"]["role"] == "shopkeeper"

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


class TestRecoveryEndpoints:

    def test_create(self, client, salesman, shopkeeper, assignment):
        resp = post_recovery(client, salesman, shopkeeper, amount=300)

        assert resp.status_code == 201
        recovery = resp.get_json()["recovery"]
        assert recovery["net_payment_cents"] == 300
        assert recovery["previous_pending_amount_cents"] == 1000
        assert recovery["new_pending_amount_cents"] == 700

    def test_validation_error_shape(self, client, salesman, shopkeeper, assignment):
        resp = post_recovery(client, salesman, shopkeeper, amount="12.50")

        assert resp.status_code == 400
        assert resp.get_json() == {
            "error": {
                "code": "validation_error",
                "message": "amount_collected_cents must be an integer (no decimals)",
                "details": {"field": "amount_collected_cents"},
            }
        }

    def test_unassigned_salesman(self, client, salesman, shopkeeper):
        resp = post_recovery(client, salesman, shopkeeper)
        assert resp.status_code == 403

    def test_insufficient_stock_leaves_balance(self, client, salesman, shopkeeper, assignment, product):
        resp = post_recovery(
            client,
            salesman,
            shopkeeper,
            recovery_type="payment_with_items",
            items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}],
        )

        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "insufficient_stock"
        assert error["details"]["available"] == 0
        assert error["details"]["requested"] == 1
        db.session.expire_all()
        assert db.session.get(Account, shopkeeper.id).pending_amount_cents == 1000

    def test_list_paginates_newest_first(self, client, salesman, shopkeeper, assignment):
        ids = [post_recovery(client, salesman, shopkeeper, amount=a).get_json()["recovery"]["id"] for a in (10, 20, 30)]

        page_one = client.get("/api/recoveries?limit=2", headers=headers_for(salesman)).get_json()
        page_two = client.get("/api/recoveries?limit=2&page=2", headers=headers_for(salesman)).get_json()

        assert page_one["pagination"] == {"page": 1, "pages": 2, "total": 3, "limit": 2}
        assert [r["id"] for r in page_one["items"]] == [ids[2], ids[1]]
        assert [r["id"] for r in page_two["items"]] == [ids[0]]

    def test_shopkeeper_sees_only_own(self, client, make_account, superadmin, salesman, shopkeeper, assignment):
        other = make_account("shopkeeper", pending_amount_cents=500)
        client.post(
            "/api/assignments",
            json={"salesman_id": salesman.id, "shopkeeper_id": other.id},
            headers=headers_for(superadmin),
        )
        post_recovery(client, salesman, shopkeeper)
        post_recovery(client, salesman, other, amount=50)

        listing = client.get("/api/recoveries", headers=headers_for(other)).get_json()

        assert listing["pagination"]["total"] == 1
        assert listing["items"][0]["shopkeeper_id"] == other.id

    def test_delete_reverses_once(self, client, admin, salesman, shopkeeper, assignment):
        recovery_id = post_recovery(client, salesman, shopkeeper, amount=300).get_json()["recovery"]["id"]

        first = client.delete(f"/api/recoveries/{recovery_id}", headers=headers_for(admin))
        assert first.status_code == 200
        assert first.get_json()["recovery"]["status"] == "cancelled"

        second = client.delete(f"/api/recoveries/{recovery_id}", headers=headers_for(admin))
        assert second.status_code == 500
        assert second.get_json()["error"] == {
            "code": "consistency_error",
            "message": "Internal ledger failure",
            "details": {},
        }

        db.session.expire_all()
        assert db.session.get(Account, shopkeeper.id).pending_amount_cents == 1000

    def test_salesman_cannot_delete(self, client, salesman, shopkeeper, assignment):
        recovery_id = post_recovery(client, salesman, shopkeeper).get_json()["recovery"]["id"]
        resp = client.delete(f"/api/recoveries/{recovery_id}", headers=headers_for(salesman))
        assert resp.status_code == 403

    def test_update_rejects_financial_fields(self, client, admin, salesman, shopkeeper, assignment):
        recovery_id = post_recovery(client, salesman, shopkeeper).get_json()["recovery"]["id"]
        resp = client.put(
            f"/api/recoveries/{recovery_id}",
            json={"amount_collected_cents": 1},
            headers=headers_for(admin),
        )
        assert resp.status_code == 400

    def test_shopkeepers_with_pending(self, client, salesman, shopkeeper, assignment):
        resp = client.get(f"/api/recoveries/shopkeepers/{salesman.id}", headers=headers_for(salesman))

        assert resp.status_code == 200
        rows = resp.get_json()["shopkeepers"]
        assert [r["shopkeeper"]["id"] for r in rows] == [shopkeeper.id]
        assert rows[0]["pending_amount_cents"] == 1000

    def test_unknown_recovery(self, client, admin):
        resp = client.get("/api/recoveries/4242", headers=headers_for(admin))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "not_found"


class TestDistributionEndpoints:

    def test_ship_deliver_and_check_stock(self, client, admin, salesman, product):
        resp = client.post(
            "/api/distribution/admin-to-salesman",
            json={"salesman_id": salesman.id, "product_id": product.id, "quantity": 12, "unit_price_cents": 90},
            headers=headers_for(admin),
        )
        assert resp.status_code == 201
        distribution = resp.get_json()["distribution"]
        assert distribution["status"] == "pending"
        assert distribution["total_amount_cents"] == 1080

        delivered = client.put(
            f"/api/distribution/{distribution['id']}/status",
            json={"status": "delivered"},
            headers=headers_for(admin),
        )
        assert delivered.status_code == 200

        again = client.put(
            f"/api/distribution/{distribution['id']}/status",
            json={"status": "returned"},
            headers=headers_for(admin),
        )
        assert again.status_code == 409

        stock = client.get(f"/api/distribution/stock/{salesman.id}/{product.id}", headers=headers_for(salesman))
        assert stock.get_json()["available"] == 12

    def test_stats(self, client, admin, stocked_salesman):
        resp = client.get("/api/distribution/stats", headers=headers_for(admin))

        assert resp.status_code == 200
        assert resp.get_json()["totals"]["delivered_distributions"] == 1


class TestOversizedIntegers:

    def test_filter_id_is_a_validation_error(self, client, admin):
        resp = client.get(f"/api/recoveries?shopkeeper_id={10**30}", headers=headers_for(admin))

        assert resp.status_code == 400
        assert resp.get_json()["error"]["details"]["field"] == "shopkeeper_id"

    def test_huge_page_is_a_validation_error(self, client, admin):
        resp = client.get(f"/api/receipts?page={10**20}", headers=headers_for(admin))

        assert resp.status_code == 400
        assert resp.get_json()["error"]["details"]["field"] == "page"

    def test_body_id_is_a_validation_error(self, client, salesman):
        resp = client.post(
            "/api/recoveries",
            json={"shopkeeper_id": 10**30, "amount_collected_cents": 100},
            headers=headers_for(salesman),
        )
        assert resp.status_code == 400

    def test_path_id_does_not_match(self, client, admin):
        resp = client.get(f"/api/recoveries/{10**30}", headers=headers_for(admin))
        assert resp.status_code == 404

    def test_principal_header_is_unauthenticated(self, client, db_session):
        resp = client.get("/api/recoveries", headers={"X-Principal-Id": str(10**30)})
        assert resp.status_code == 401


class TestFallbackErrors:

    def test_unknown_route_is_json(self, client, db_session):
        resp = client.get("/api/nope")

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "not_found"
