import pytest
from datetime import datetime, timedelta, timezone

from tracker.errors import LinkNotFound, TokenCollision, TransitionConflict
from tracker.models import Link, LinkMode, LinkStatus
from tracker.registry import LinkRegistry, issue_link

def test_create_link(registry):
    link = registry.create("https://example.com", LinkMode.SINGLE_USE)

    assert link.id is not None
    assert len(link.token) >= 8
    assert link.target_url == "https://example.com"
    assert link.mode == LinkMode.SINGLE_USE
    assert link.status == LinkStatus.ACTIVE
    assert link.created_at is not None

def test_create_collision(db):
    registry = LinkRegistry(db, token_factory=lambda: "fixedtoken")
    registry.create("https://example.com")

    with pytest.raises(TokenCollision):
        registry.create("https://example.org")

    # Session stays usable after the rollback
    assert registry.get("fixedtoken").target_url == "https://example.com"

def test_issue_link_retries_on_collision(db):
    tokens = iter(["taken0001", "taken0001", "taken0001", "fresh0001"])
    registry = LinkRegistry(db, token_factory=lambda: next(tokens))
    registry.create("https://first.example")

    link = issue_link(registry, "https://second.example", attempts=5)
    assert link.token == "fresh0001"

def test_issue_link_gives_up(db):
    registry = LinkRegistry(db, token_factory=lambda: "taken0001")
    registry.create("https://first.example")

    with pytest.raises(TokenCollision):
        issue_link(registry, "https://second.example", attempts=3)

def test_get_missing(registry):
    with pytest.raises(LinkNotFound) as exc_info:
        registry.get("missing01")
    assert exc_info.value.reason == "not_found"

def test_list_all_newest_first(db, registry):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(3):
        db.add(Link(token=f"token{i:04d}", target_url="https://example.com",
                    created_at=base + timedelta(days=i)))
    db.commit()

    tokens = [link.token for link in registry.list_all()]
    assert tokens == ["token0002", "token0001", "token0000"]

    assert [link.token for link in registry.list_all(limit=1, offset=1)] == ["token0001"]

def test_transition_success(db, registry, make_link):
    link = make_link(mode=LinkMode.SINGLE_USE)

    registry.transition(link.token, LinkStatus.ACTIVE, LinkStatus.CONSUMED)

    db.expire_all()
    stored = registry.get(link.token)
    assert stored.status == LinkStatus.CONSUMED
    assert stored.consumed_at is not None

def test_transition_conflict_does_not_mutate(db, registry, make_link):
    link = make_link(mode=LinkMode.SINGLE_USE)
    registry.transition(link.token, LinkStatus.ACTIVE, LinkStatus.CONSUMED)

    with pytest.raises(TransitionConflict):
        registry.transition(link.token, LinkStatus.ACTIVE, LinkStatus.DELETED)

    db.expire_all()
    assert registry.get(link.token).status == LinkStatus.CONSUMED

def test_transition_unknown_token(registry):
    with pytest.raises(TransitionConflict):
        registry.transition("missing01", LinkStatus.ACTIVE, LinkStatus.CONSUMED)

def test_transition_hard_delete(db, registry, make_link):
    link = make_link(mode=LinkMode.SINGLE_USE)
    token = link.token

    registry.transition(token, LinkStatus.ACTIVE, LinkStatus.DELETED, hard_delete=True)

    db.expire_all()
    with pytest.raises(LinkNotFound):
        registry.get(token)

    with pytest.raises(TransitionConflict):
        registry.transition(token, LinkStatus.ACTIVE, LinkStatus.DELETED, hard_delete=True)

def test_revoke(db, registry, make_link):
    link = make_link()

    registry.revoke(link.token)
    db.expire_all()
    assert registry.get(link.token).status == LinkStatus.DELETED

    # Revoking twice is a no-op
    registry.revoke(link.token)

    with pytest.raises(LinkNotFound):
        registry.revoke("missing01")
