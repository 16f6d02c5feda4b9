"""
API tests for the dashboard backend.
"""
import pytest
from fastapi.testclient import TestClient

import dashboard.app as dashboard_app

ADMIN = {"X-Actor-Name": "Priya", "X-Actor-Role": "main_admin"}
CREATOR = {"X-Actor-Name": "Arun", "X-Actor-Role": "po_creator"}
APPROVER = {"X-Actor-Name": "Meera", "X-Actor-Role": "approval_admin"}


@pytest.fixture
def client(seeded_store, monkeypatch):
    monkeypatch.setattr(dashboard_app, "_store", seeded_store)
    return TestClient(dashboard_app.app)


@pytest.fixture
def ordered(client):
    """Queue three products and generate PO-0001 (Acme) and PO-0002 (Best)."""
    for code in ("P-PAPER", "P-TONER", "P-PENS"):
        assert client.post("/api/queue", json={"product": code}, headers=CREATOR).status_code == 200
    response = client.post("/api/pos/generate", json={}, headers=CREATOR)
    assert response.status_code == 201
    return client


@pytest.mark.api
class TestAuth:

    def test_health_is_open(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_identity(self, client):
        response = client.get("/api/stats")
        assert response.status_code == 401
        assert response.json()["error"] == "UnauthenticatedError"

    def test_unknown_role(self, client):
        response = client.get("/api/stats", headers={"X-Actor-Name": "X", "X-Actor-Role": "root"})
        assert response.status_code == 401

    def test_role_defaults_to_creator(self, client):
        response = client.post("/api/vendors", json={"name": "Cobalt"}, headers={"X-Actor-Name": "X"})
        assert response.status_code == 403

    def test_approver_cannot_generate(self, client):
        response = client.post("/api/pos/generate", json={}, headers=APPROVER)
        assert response.status_code == 403
        assert response.json()["error"] == "PermissionDeniedError"


@pytest.mark.api
class TestCatalogueRoutes:

    def test_stats(self, client):
        response = client.get("/api/stats", headers=CREATOR)
        assert response.status_code == 200
        assert response.json()["vendors"] == 2

    def test_add_vendor(self, client):
        response = client.post("/api/vendors", json={"name": "Cobalt"}, headers=ADMIN)
        assert response.status_code == 201
        assert response.json()["display_id"] == "V003"

    def test_duplicate_vendor(self, client):
        response = client.post("/api/vendors", json={"name": " ACME traders "}, headers=ADMIN)
        assert response.status_code == 409

    def test_vendor_batch_reports_duplicates(self, client):
        body = {"vendors": [{"name": "Cobalt"}, {"name": "Best Supplies"}]}
        response = client.post("/api/vendors/batch", json=body, headers=ADMIN)
        assert response.status_code == 200
        assert response.json() == {"added": 1, "duplicates": ["Best Supplies"]}

    def test_product_views(self, client):
        client.post("/api/queue", json={"product": "P-PAPER"}, headers=CREATOR)
        available = client.get("/api/products", headers=CREATOR).json()
        queued = client.get("/api/products?view=queued", headers=CREATOR).json()
        assert "Paper" not in [p["name"] for p in available]
        assert [p["name"] for p in queued] == ["Paper"]

    def test_bad_unit(self, client):
        body = {"name": "Glue", "unit": "litres"}
        assert client.post("/api/products", json=body, headers=ADMIN).status_code == 422

    def test_unknown_product(self, client):
        assert client.delete("/api/products/nope", headers=ADMIN).status_code == 404


@pytest.mark.api
class TestQueueRoutes:

    def test_bad_quantity(self, client):
        response = client.post("/api/queue", json={"product": "P-PAPER", "quantity": 0}, headers=CREATOR)
        assert response.status_code == 422

    def test_add_twice(self, client):
        first = client.post("/api/queue", json={"product": "P-PAPER"}, headers=CREATOR)
        second = client.post("/api/queue", json={"product": "P-PAPER"}, headers=CREATOR)
        assert first.json() == {"added": True}
        assert second.json() == {"added": False}

    def test_batch_and_clear(self, client):
        body = {"items": [{"product": "P-PAPER"}, {"product": "P-PENS", "quantity": 3}]}
        assert client.post("/api/queue/batch", json=body, headers=CREATOR).json() == {"added": 2, "skipped": 0}
        assert len(client.get("/api/queue", headers=CREATOR).json()) == 2
        assert client.delete("/api/queue", headers=CREATOR).json() == {"removed": 2}

    def test_generate_empty_queue(self, client):
        response = client.post("/api/pos/generate", json={}, headers=CREATOR)
        assert response.status_code == 400
        assert response.json()["error"] == "EmptyQueueError"


@pytest.mark.api
class TestPurchaseOrderRoutes:

    def test_register(self, ordered):
        orders = ordered.get("/api/pos", headers=CREATOR).json()
        assert [o["po_number"] for o in orders] == ["PO-0001", "PO-0002"]
        assert orders[0]["total_items"] == 2
        assert orders[0]["created_by"] == "Arun"
        assert ordered.get("/api/pos/next-number", headers=CREATOR).json() == {"po_number": "PO-0003"}

    def test_missing_po(self, ordered):
        assert ordered.get("/api/pos/PO-9999", headers=CREATOR).status_code == 404

    def test_approve_flow(self, ordered):
        response = ordered.post("/api/pos/PO-0001/approve", headers=APPROVER)
        assert response.status_code == 200
        assert response.json()["approved_by"] == "Meera"
        assert ordered.post("/api/pos/PO-0001/approve", headers=APPROVER).status_code == 409
        approvals = ordered.get("/api/approvals", headers=APPROVER).json()
        assert [o["po_number"] for o in approvals] == ["PO-0002"]

    def test_creator_cannot_approve(self, ordered):
        assert ordered.post("/api/pos/PO-0001/approve", headers=CREATOR).status_code == 403

    def test_reject(self, ordered):
        response = ordered.post("/api/pos/PO-0002/reject", json={"reason": "late"}, headers=APPROVER)
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "late"

    def test_bulk_approve(self, ordered):
        response = ordered.post("/api/pos/approve", json={"refs": ["PO-0001", "PO-0002"]}, headers=APPROVER)
        assert response.json() == {"approved": 2}

    def test_export_text_is_logged(self, ordered):
        response = ordered.get("/api/pos/PO-0001/export?fmt=text&location=Store%202", headers=CREATOR)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "PURCHASE ORDER PO-0001" in response.text
        logs = ordered.get("/api/pos/PO-0001/downloads", headers=CREATOR).json()
        assert [(l["location"], l["downloaded_by"]) for l in logs] == [("Store 2", "Arun")]

    def test_export_html(self, ordered):
        response = ordered.get("/api/pos/PO-0002/export", headers=CREATOR)
        assert response.headers["content-type"].startswith("text/html")
        assert "Best Supplies" in response.text

    def test_export_bad_format(self, ordered):
        assert ordered.get("/api/pos/PO-0001/export?fmt=pdf", headers=CREATOR).status_code == 400

    def test_send_skipped_without_mail_api(self, ordered):
        response = ordered.post("/api/pos/PO-0001/send", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == "skipped"

    def test_delete_requires_admin(self, ordered):
        assert ordered.delete("/api/pos/PO-0001", headers=CREATOR).status_code == 403
        assert ordered.delete("/api/pos/PO-0001", headers=ADMIN).json() == {"deleted": True}

    def test_bulk_export_logs_each(self, ordered):
        body = {"refs": ["PO-0001", "PO-0002"], "location": "Warehouse", "fmt": "text"}
        response = ordered.post("/api/pos/export", json=body, headers=CREATOR)
        assert response.status_code == 200
        documents = response.json()["documents"]
        assert list(documents) == ["PO-0001", "PO-0002"]
        assert "PURCHASE ORDER PO-0002" in documents["PO-0002"]
        for ref in ("PO-0001", "PO-0002"):
            logs = ordered.get(f"/api/pos/{ref}/downloads", headers=CREATOR).json()
            assert [l["location"] for l in logs] == ["Warehouse"]

    def test_bulk_export_unknown_ref(self, ordered):
        response = ordered.post("/api/pos/export", json={"refs": ["PO-0001", "PO-0404"]}, headers=CREATOR)
        assert response.status_code == 404

    def test_bulk_delete(self, ordered):
        body = {"refs": ["PO-0001", "PO-0404"]}
        assert ordered.post("/api/pos/bulk-delete", json=body, headers=CREATOR).status_code == 403
        response = ordered.post("/api/pos/bulk-delete", json=body, headers=ADMIN)
        assert response.json() == {"deleted": ["PO-0001"], "failed": ["PO-0404"]}
        assert [o["po_number"] for o in ordered.get("/api/pos", headers=ADMIN).json()] == ["PO-0002"]

    def test_send_by_vendor_rejects_bad_address(self, ordered):
        ordered.patch("/api/vendors/V002", json={"contact_person_email": "not-an-email"}, headers=ADMIN)
        response = ordered.post("/api/pos/send", json={"refs": ["PO-0001", "PO-0002"]}, headers=ADMIN)
        assert response.status_code == 422
        assert "Best Supplies" in response.json()["detail"]

    def test_send_by_vendor(self, ordered):
        response = ordered.post("/api/pos/send", json={"refs": ["PO-0001"]}, headers=ADMIN)
        assert response.status_code == 200
        (result,) = response.json()["results"]
        assert result["vendor"] == "Acme Traders"
        assert result["po_numbers"] == ["PO-0001"]
        assert result["status"] == "skipped"
        assert ordered.post("/api/pos/send", json={"refs": ["PO-0001"]}, headers=CREATOR).status_code == 403

    def test_whatsapp(self, ordered):
        assert ordered.get("/api/pos/PO-0001/whatsapp", headers=ADMIN).status_code == 422
        ordered.patch("/api/vendors/V001", json={"phone": "98765 43210"}, headers=ADMIN)
        share = ordered.get("/api/pos/PO-0001/whatsapp", headers=ADMIN).json()
        assert share["phone"] == "9876543210"
        assert share["url"].startswith("https://wa.me/9876543210?text=")
        assert "*Vendor:* Acme Traders" in share["message"]

    def test_products_for_vendor(self, client):
        names = [p["name"] for p in client.get("/api/products?vendor=V001", headers=CREATOR).json()]
        assert names == ["Paper", "Pens"]
        assert client.get("/api/products?vendor=V404", headers=CREATOR).status_code == 404
