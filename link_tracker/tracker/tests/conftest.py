import pytest
import fakeredis
from fastapi.testclient import TestClient

from tracker.config import Settings
from tracker.database import Database
from tracker.main import create_app
from tracker.models import LinkMode
from tracker.registry import LinkRegistry
from tracker.visits import SyncVisitRecorder, VisitLog

ADMIN_PASSWORD = "test-admin-password"

# In-memory Redis handed to the app and the engine instead of a real server
@pytest.fixture
def redis_mock():
    return fakeredis.FakeStrictRedis(server=fakeredis.FakeServer(), decode_responses=True)

@pytest.fixture
def settings_overrides():
    """Override in a test module to change application settings"""
    return {}

@pytest.fixture
def test_settings(tmp_path, settings_overrides):
    values = {
        "DATABASE_URL": f"sqlite:///{(tmp_path / 'test.db').as_posix()}",
        "BASE_URL": "http://testserver",
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "SECRET_KEY": "test-secret",
        "LOG_FILE": None,
    }
    values.update(settings_overrides)
    return Settings(**values)

@pytest.fixture
def database(test_settings):
    database = Database(test_settings.DATABASE_URL).open()
    yield database
    database.close()

@pytest.fixture
def db(database):
    db = database.session()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def registry(db):
    return LinkRegistry(db)

@pytest.fixture
def visit_log(db):
    return VisitLog(db)

@pytest.fixture
def recorder(visit_log):
    return SyncVisitRecorder(visit_log)

@pytest.fixture
def make_link(registry):
    def _make_link(target_url="https://a.example", mode=LinkMode.REUSABLE):
        return registry.create(target_url, mode)
    return _make_link

@pytest.fixture
def client(test_settings, database, redis_mock):
    app = create_app(test_settings, redis_client=redis_mock)

    with TestClient(app) as client:
        yield client

@pytest.fixture
def admin_client(client):
    response = client.post(
        "/auth/token",
        data={"username": "admin", "password": ADMIN_PASSWORD}
    )
    token = response.json()["access_token"]

    client.cookies.clear()
    client.headers["Authorization"] = f"Bearer {token}"
    return client

@pytest.fixture
def admin_password():
    return ADMIN_PASSWORD
