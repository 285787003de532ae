import pytest
from concurrent.futures import ThreadPoolExecutor
from fastapi import status
from unittest.mock import patch

from tracker.models import Link, LinkStatus, Visit
from tracker.visits import flush_buffered_visits
import redis
import tracker.cache

def create_link(admin_client, target_url, mode):
    response = admin_client.post("/admin/links", json={"target_url": target_url, "mode": mode})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["token"]

def visit_count(db, token):
    return db.query(Visit).filter(Visit.link_token == token).count()

def test_single_use_scenario(admin_client, db):
    token = create_link(admin_client, "https://a.example", "single_use")

    response = admin_client.get(f"/news/{token}", follow_redirects=False)
    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "https://a.example"
    assert visit_count(db, token) == 1

    response = admin_client.get(f"/news/{token}", follow_redirects=False)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert visit_count(db, token) == 2

    link = db.query(Link).filter(Link.token == token).first()
    assert link.status == LinkStatus.CONSUMED

def test_reusable_scenario(admin_client, db):
    token = create_link(admin_client, "https://b.example", "reusable")

    for _ in range(10):
        response = admin_client.get(f"/news/{token}", follow_redirects=False)
        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "https://b.example"

    assert visit_count(db, token) == 10
    link = db.query(Link).filter(Link.token == token).first()
    assert link.status == LinkStatus.ACTIVE

def test_redirect_is_the_whole_response(admin_client):
    token = create_link(admin_client, "https://a.example/page?x=1", "reusable")

    response = admin_client.get(f"/news/{token}", follow_redirects=False)

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "https://a.example/page?x=1"
    assert response.content == b""

def test_unknown_and_consumed_are_indistinguishable(admin_client):
    token = create_link(admin_client, "https://a.example", "single_use")
    admin_client.get(f"/news/{token}", follow_redirects=False)

    consumed = admin_client.get(f"/news/{token}", follow_redirects=False)
    unknown = admin_client.get("/news/neverexisted", follow_redirects=False)
    malformed = admin_client.get("/news/bad!", follow_redirects=False)

    assert consumed.status_code == unknown.status_code == malformed.status_code == 404
    assert consumed.content == unknown.content == malformed.content

def test_visit_records_client(admin_client, db):
    token = create_link(admin_client, "https://a.example", "reusable")

    admin_client.get(
        f"/news/{token}",
        headers={"User-Agent": "Test Client", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        follow_redirects=False
    )

    visit = db.query(Visit).filter(Visit.link_token == token).one()
    assert visit.ip_address == "203.0.113.7"
    assert visit.user_agent == "Test Client"
    assert visit.admitted is True


class TestConcurrentRedemption:
    @pytest.fixture
    def settings_overrides(self):
        return {"CACHE_ENABLED": False}

    def test_fifty_concurrent_requests_one_redirect(self, admin_client, db):
        token = create_link(admin_client, "https://a.example", "single_use")

        def redeem(_):
            return admin_client.get(f"/news/{token}", follow_redirects=False).status_code

        with ThreadPoolExecutor(max_workers=10) as pool:
            codes = list(pool.map(redeem, range(50)))

        assert codes.count(302) == 1
        assert codes.count(404) == 49
        assert visit_count(db, token) == 50


class TestGoneStatus:
    @pytest.fixture
    def settings_overrides(self):
        return {"NOT_ADMITTED_STATUS": 410, "REDIRECT_PREFIX": "go"}

    def test_configured_status_and_prefix(self, admin_client):
        token = create_link(admin_client, "https://a.example", "single_use")

        assert admin_client.get(f"/go/{token}", follow_redirects=False).status_code == 302

        consumed = admin_client.get(f"/go/{token}", follow_redirects=False)
        unknown = admin_client.get("/go/neverexisted", follow_redirects=False)
        assert consumed.status_code == unknown.status_code == 410
        assert consumed.content == unknown.content

    @pytest.mark.parametrize("path", [
        "/go/never/existed",
        "/go/never%2Fexisted",
        "/go/",
        "/go",
    ])
    def test_malformed_paths_get_the_same_refusal(self, client, path):
        unknown = client.get("/go/neverexisted", follow_redirects=False)
        response = client.get(path, follow_redirects=False)

        assert response.status_code == 410
        assert response.content == unknown.content


class TestDeferredLogging:
    @pytest.fixture
    def settings_overrides(self):
        return {"VISIT_LOGGING": "deferred", "VISIT_FLUSH_INTERVAL": 3600}

    def test_visits_buffered_then_flushed(self, admin_client, db, database, redis_mock):
        token = create_link(admin_client, "https://a.example", "single_use")

        assert admin_client.get(f"/news/{token}", follow_redirects=False).status_code == 302
        assert admin_client.get(f"/news/{token}", follow_redirects=False).status_code == 404

        assert visit_count(db, token) == 0
        assert redis_mock.llen(tracker.cache.PENDING_VISITS_KEY) == 2

        assert flush_buffered_visits(database.session, redis_mock) == 2
        assert visit_count(db, token) == 2

    def test_buffer_failure_does_not_block_redirect(self, admin_client, db, redis_mock):
        token = create_link(admin_client, "https://a.example", "single_use")

        with patch.object(redis_mock, "lpush", side_effect=redis.ConnectionError("down")):
            response = admin_client.get(f"/news/{token}", follow_redirects=False)

        assert response.status_code == 302
        link = db.query(Link).filter(Link.token == token).first()
        assert link.status == LinkStatus.CONSUMED


class TestReusableCache:
    def test_revoked_link_is_evicted_from_cache(self, admin_client, redis_mock):
        token = create_link(admin_client, "https://a.example", "reusable")

        admin_client.get(f"/news/{token}", follow_redirects=False)
        assert redis_mock.get(f"link:{token}") == "https://a.example"

        assert admin_client.delete(f"/admin/links/{token}").status_code == 204
        assert redis_mock.get(f"link:{token}") is None

        response = admin_client.get(f"/news/{token}", follow_redirects=False)
        assert response.status_code == 404

    def test_revoke_reports_cache_failure(self, admin_client, db, redis_mock):
        token = create_link(admin_client, "https://a.example", "reusable")
        admin_client.get(f"/news/{token}", follow_redirects=False)

        with patch.object(redis_mock, "delete", side_effect=redis.ConnectionError("down")):
            response = admin_client.delete(f"/admin/links/{token}")

        # The link is revoked in the database but the admin is told the cache still serves it
        assert response.status_code == 503
        link = db.query(Link).filter(Link.token == token).first()
        assert link.status == LinkStatus.DELETED
        assert redis_mock.get(f"link:{token}") == "https://a.example"

        # Retrying once Redis is back clears the entry
        assert admin_client.delete(f"/admin/links/{token}").status_code == 204
        assert redis_mock.get(f"link:{token}") is None
        assert admin_client.get(f"/news/{token}", follow_redirects=False).status_code == 404
