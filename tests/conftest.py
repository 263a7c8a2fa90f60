import pytest
from fastapi.testclient import TestClient

from orderkaro.app import create_app
from orderkaro.config import Settings
from orderkaro.database import create_db_engine

PASSWORD = "s3cret-pass"


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        monitor_enabled=False,
        seed_sample_data=True,
        jwt_secret_key="test-secret",
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine=engine)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register(client, email, name="Asha Verma", password=PASSWORD):
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(session):
    return {"Authorization": f"Bearer {session['access_token']}"}


@pytest.fixture
def make_user(client):
    """Register a user and return (session, headers)."""
    def _make(email, **kwargs):
        session = register(client, email, **kwargs)
        return session, auth_headers(session)
    return _make


@pytest.fixture
def user(client):
    return register(client, "asha@orderkaro.in")


@pytest.fixture
def headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(client, services):
    session = register(client, "admin@orderkaro.in", name="Store Admin")
    services.data.table("users").eq("id", session["user"]["id"]).update({"is_admin": True})
    return auth_headers(session)
