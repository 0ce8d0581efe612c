"""
test_order_product_routes.py — Order dashboard stats and catalog authoring.

Both run against the FakeSession from conftest: stats get a prepared
aggregate row, product routes get prepared CatalogProduct rows.
"""

from decimal import Decimal

from sqlalchemy.dialects import postgresql

from app.models.orm_models import CatalogProduct


def _sql(stmt):
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestOrderStats:

    def test_counts_and_revenue(self, client, db_session, dealer_headers):
        db_session.queue((12, 3, 4, 5, 6, Decimal("1234.50")))
        resp = client.get("/api/orders/stats", headers=dealer_headers)
        assert resp.status_code == 200
        assert resp.json()["data"] == {
            "total_orders": 12,
            "pending_orders": 3,
            "in_production_orders": 4,
            "completed_orders": 5,
            "recent_orders": 6,
            "total_revenue": 1234.5,
        }

    def test_dealer_sees_only_own_orders(self, client, db_session, dealer_headers, dealer_id):
        db_session.queue((0, 0, 0, 0, 0, 0))
        client.get("/api/orders/stats", headers=dealer_headers)
        stmt = db_session.statements[0]
        assert "orders.dealer_id" in _sql(stmt)
        assert dealer_id in stmt.compile().params.values()

    def test_admin_sees_all_orders(self, client, db_session, admin_headers):
        db_session.queue((0, 0, 0, 0, 0, None))
        resp = client.get("/api/orders/stats", headers=admin_headers)
        assert resp.json()["data"]["total_revenue"] == 0.0
        assert "orders.dealer_id" not in _sql(db_session.statements[0])

    def test_revenue_counts_delivered_only(self, client, db_session, admin_headers):
        db_session.queue((0, 0, 0, 0, 0, 0))
        client.get("/api/orders/stats", headers=admin_headers)
        assert "sum(orders.total_amount) FILTER (WHERE orders.status" in _sql(db_session.statements[0])

    def test_requires_auth(self, client):
        assert client.get("/api/orders/stats").status_code == 401


def _row(**overrides):
    values = dict(
        id="p-1", code="10614", name="ALÜMİNYUM KASA", category="PROFILE", system_type="BYD100",
        unit="mt", weight_per_meter=Decimal("1.401"), width_multiplier=Decimal("1"),
        height_multiplier=Decimal("0"), accessory_role="GENERIC", base_price=Decimal("4.8"),
        currency="EUR", sort_order=1, is_active=True,
    )
    values.update(overrides)
    return CatalogProduct(**values)


class TestProductAuthoring:

    def test_create_accessory_classifies_role(self, client, db_session, admin_headers):
        db_session.queue(None, 17)    # no code clash, current max sort_order
        resp = client.post("/api/products", headers=admin_headers, json={
            "code": "zip-reg-202", "name": "Fermuar 202", "category": "ACCESSORY",
            "unit": "mt", "base_price": 2.4,
        })
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["code"] == "ZIP-REG-202"
        assert data["accessory_role"] == "ZIP_FABRIC"
        assert data["sort_order"] == 18
        assert data["system_type"] == "ALL"
        assert len(db_session.added) == 1

    def test_duplicate_code_rejected(self, client, db_session, admin_headers):
        db_session.queue(_row(code="ZG0256", category="ACCESSORY"))
        resp = client.post("/api/products", headers=admin_headers, json={
            "code": "ZG0256", "name": "Guide", "category": "ACCESSORY",
        })
        assert resp.status_code == 400
        assert db_session.added == []

    def test_profile_without_weight_rejected(self, client, db_session, admin_headers):
        resp = client.post("/api/products", headers=admin_headers, json={
            "code": "10700", "name": "Kasa", "category": "PROFILE", "system_type": "BYD100",
            "unit": "mt", "base_price": 4.8,
        })
        assert resp.status_code == 400
        assert db_session.statements == []

    def test_unknown_enum_value_is_422(self, client, db_session, admin_headers):
        resp = client.post("/api/products", headers=admin_headers, json={
            "code": "15001", "name": "Kasa", "category": "PROFILE", "system_type": "BYD150",
        })
        assert resp.status_code == 422

    def test_update_keeps_unsent_fields(self, client, db_session, admin_headers):
        row = _row()
        db_session.queue(row)
        resp = client.put("/api/products/p-1", headers=admin_headers, json={"base_price": 5.1})
        assert resp.status_code == 200
        assert row.base_price == 5.1
        assert row.weight_per_meter == 1.401
        assert (row.width_multiplier, row.height_multiplier) == (1.0, 0.0)
        assert row.code == "10614"

    def test_update_to_invalid_profile_rejected(self, client, db_session, admin_headers):
        row = _row(weight_per_meter=None, width_multiplier=None, height_multiplier=None)
        db_session.queue(row)
        resp = client.put("/api/products/p-1", headers=admin_headers, json={"name": "Renamed"})
        assert resp.status_code == 400
        assert row.name == "ALÜMİNYUM KASA"

    def test_delete_is_soft(self, client, db_session, admin_headers):
        row = _row()
        db_session.queue(row)
        resp = client.delete("/api/products/p-1", headers=admin_headers)
        assert resp.status_code == 200
        assert row.deleted_at is not None
        assert row.is_active is False

    def test_missing_product_is_404(self, client, db_session, admin_headers):
        assert client.put("/api/products/p-9", headers=admin_headers, json={"name": "X"}).status_code == 404
        assert client.delete("/api/products/p-9", headers=admin_headers).status_code == 404

    def test_authoring_is_admin_only(self, client, db_session, dealer_headers):
        body = {"code": "X1", "name": "X", "category": "ACCESSORY"}
        assert client.post("/api/products", headers=dealer_headers, json=body).status_code == 403
        assert client.put("/api/products/p-1", headers=dealer_headers, json={"name": "X"}).status_code == 403
        assert client.delete("/api/products/p-1", headers=dealer_headers).status_code == 403
