from fastapi.testclient import TestClient

from orderkaro.app import create_app
from orderkaro.config import Settings
from orderkaro import services as services_module
from orderkaro.database import create_db_engine
from orderkaro.services import build_services


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == "Welcome to OrderKaro API"


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["environment"] == "development"


def test_ping(client):
    response = client.get("/api/ping")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_db_status(client):
    response = client.get("/api/db-status")
    assert response.status_code == 200
    data = response.json()
    assert data["environment"] == "localhost"
    assert data["database"]["connected"] is True
    assert all(data["database"]["tables"].values())
    assert data["initialization"]["initialized"] is True
    assert "recommendations" in data["monitor"]
    assert set(data["cache"]) == {"total", "expired", "active"}


def test_queries_are_logged_to_monitor(client, services):
    client.get("/api/products")
    assert any(q["table"] == "products" for q in services.monitor.queries)


def test_unknown_route_uses_message_body(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert "message" in response.json()


def test_request_validation_is_400(client, headers):
    response = client.post("/api/cart", headers=headers, json={"quantity": 1})
    assert response.status_code == 400
    assert "product_id" in response.json()["message"]


def test_reinitialize_requires_admin(client, headers, admin_headers):
    assert client.post("/api/db-status/reinitialize", headers=headers).status_code == 403

    response = client.post("/api/db-status/reinitialize", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["initialized"] is True


def test_app_starts_degraded_when_database_is_down():
    settings = Settings(database_url="sqlite:////nonexistent-dir/orderkaro.db", monitor_enabled=False)
    app = create_app(settings, engine=create_db_engine(settings.database_url))
    services = app.state.services
    services.bootstrap.initializer._sleep = _no_sleep

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        assert services.bootstrap.state["initialized"] is False
        assert services.bootstrap.state["attempts"] == 3
        assert client.get("/api/ping").status_code == 500


async def _no_sleep(delay):
    return None


def test_services_engine_uses_query_timeout(monkeypatch):
    seen = {}

    def engine_with_timeout(database_url, query_timeout=None):
        seen["query_timeout"] = query_timeout
        return create_db_engine(database_url, query_timeout=query_timeout)

    monkeypatch.setattr(services_module, "create_db_engine", engine_with_timeout)
    services = build_services(Settings(database_url="sqlite://", monitor_enabled=False))
    services.engine.dispose()
    assert seen["query_timeout"] == 25.0
