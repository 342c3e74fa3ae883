"""
Regression tests for issues found during code review.

1. Unique constraint violations must return 409 (not 500)
2. X-Query-Count / X-Store-Ops headers must report real counts
3. CORS must not set allow_credentials=true with allow_origins=*
4. Back-reference drift left by interrupted operations must be repairable
5. Persistence failures surface as the failure envelope with 500
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.exceptions import InternalError
from app.schemas import CategoryCreate, CommentCreate, PostCreate, TagCreate, UserCreate
from app.services import category_service, comment_service, post_service, tag_service, user_service
from app.services.reconcile import reconcile
from app.store import EntityStore


# ---------------------------------------------------------------------------
# 1. Unique constraint violations -> 409
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_email_returns_409(async_client: AsyncClient):
    """Creating a user with an existing email returns 409, not 500."""
    await async_client.post("/api/v1/users", json={
        "username": "emailuser1", "email": "same@example.com", "password_hash": "x",
    })
    resp = await async_client.post("/api/v1/users", json={
        "username": "emailuser2", "email": "same@example.com", "password_hash": "x",
    })
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_rename_tag_to_existing_name_returns_409(async_client: AsyncClient):
    await async_client.post("/api/v1/tags", json={"name": "first"})
    second = (await async_client.post("/api/v1/tags", json={"name": "second"})).json()["data"]["id"]
    resp = await async_client.patch(f"/api/v1/tags/{second}", json={"name": "first"})
    assert resp.status_code == 409
    assert (await async_client.get(f"/api/v1/tags/{second}")).json()["data"]["name"] == "second"


# ---------------------------------------------------------------------------
# 2. Diagnostic headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_diagnostic_headers_on_post_detail(async_client: AsyncClient):
    """
    With the cache disabled, a post detail read is a single store call
    issuing a single SELECT.
    """
    user_id = (await async_client.post("/api/v1/users", json={
        "username": "qc", "email": "qc@example.com", "password_hash": "x",
    })).json()["data"]["id"]
    post_id = (await async_client.post(
        "/api/v1/posts", json={"title": "QC", "content": "c"}, headers={"X-User-Id": str(user_id)},
    )).json()["data"]["id"]

    resp = await async_client.get(f"/api/v1/posts/{post_id}")
    assert resp.status_code == 200
    assert int(resp.headers["x-store-ops"]) == 1
    assert int(resp.headers["x-query-count"]) >= 1
    assert float(resp.headers["x-response-time-ms"]) >= 0


@pytest.mark.asyncio
async def test_store_ops_header_counts_fan_out(async_client: AsyncClient):
    """Creating a tagged post issues one store call per validation, insert and push."""
    user_id = (await async_client.post("/api/v1/users", json={
        "username": "fan", "email": "fan@example.com", "password_hash": "x",
    })).json()["data"]["id"]
    tag_ids = [
        (await async_client.post("/api/v1/tags", json={"name": name})).json()["data"]["id"]
        for name in ("a", "b")
    ]

    resp = await async_client.post(
        "/api/v1/posts",
        json={"title": "Fan", "content": "out", "tag_ids": tag_ids},
        headers={"X-User-Id": str(user_id)},
    )
    assert resp.status_code == 201
    # validate user + validate tags + insert
    # + (validate + push) for the user + (validate + 2 pushes) for the tags
    assert int(resp.headers["x-store-ops"]) == 8


# ---------------------------------------------------------------------------
# 3. CORS headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_no_credentials_with_wildcard_origin(async_client: AsyncClient):
    """
    When allow_origins=["*"], the response must NOT include
    Access-Control-Allow-Credentials: true; browsers reject that combination.
    """
    resp = await async_client.options(
        "/api/v1/posts",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    cred_header = resp.headers.get("access-control-allow-credentials", "").lower()
    assert cred_header != "true", (
        "CORS must not combine allow_origins=* with allow_credentials=true"
    )


# ---------------------------------------------------------------------------
# 4. Reconciliation after injected drift
# ---------------------------------------------------------------------------

async def _seed(store: EntityStore) -> dict:
    alice = (await user_service.create_user(
        store, UserCreate(username="alice", email="alice@example.com", password_hash="x")
    )).data["id"]
    bob = (await user_service.create_user(
        store, UserCreate(username="bob", email="bob@example.com", password_hash="x")
    )).data["id"]
    cat = (await category_service.create_category(store, CategoryCreate(name="Tech"))).data["id"]
    tag = (await tag_service.create_tag(store, TagCreate(name="python"))).data["id"]
    post = (await post_service.create_post(
        store, PostCreate(title="T", content="C", category_id=cat, tag_ids=[tag]), alice
    )).data["id"]
    bob_post = (await post_service.create_post(store, PostCreate(title="B", content="b"), bob)).data["id"]
    root = (await comment_service.create_comment(store, CommentCreate(content="r", post_id=post), bob)).data["id"]
    reply = (await comment_service.create_comment(
        store, CommentCreate(content="re", post_id=post, parent_comment_id=root), alice
    )).data["id"]
    return {
        "alice": alice, "bob": bob, "cat": cat, "tag": tag,
        "post": post, "bob_post": bob_post, "root": root, "reply": reply,
    }


@pytest.mark.asyncio
async def test_reconcile_clean_store_reports_nothing(store: EntityStore):
    await _seed(store)
    report = await reconcile(store)
    assert report.total == 0


@pytest.mark.asyncio
async def test_reconcile_repairs_lost_back_references(store: EntityStore):
    ids = await _seed(store)
    # Simulate fan-out interrupted half way and a stale push.
    await store.tags.pull_from_array(ids["tag"], "posts", ids["post"])
    await store.users.pull_from_array(ids["alice"], "comments", ids["reply"])
    await store.comments.pull_from_array(ids["root"], "replies", ids["reply"])
    await store.categories.push_to_array(ids["cat"], "posts", 999)

    report = await reconcile(store)
    assert report.back_references_added == 3
    assert report.back_references_removed == 1

    assert (await store.tags.find_by_id(ids["tag"])).posts == [ids["post"]]
    assert (await store.users.find_by_id(ids["alice"])).comments == [ids["reply"]]
    assert (await store.comments.find_by_id(ids["root"])).replies == [ids["reply"]]
    assert (await store.categories.find_by_id(ids["cat"])).posts == [ids["post"]]
    assert (await reconcile(store)).total == 0


@pytest.mark.asyncio
async def test_reconcile_removes_dangling_forward_references(store: EntityStore):
    ids = await _seed(store)
    # Documents deleted directly, skipping every cascade.
    await store.categories.delete_by_id(ids["cat"])
    await store.tags.delete_by_id(ids["tag"])
    await store.comments.delete_by_id(ids["root"])

    report = await reconcile(store)
    assert report.dangling_categories_unset == 1
    assert report.dangling_tags_pulled == 1
    assert report.orphan_comments_deleted == 1

    post = await store.posts.find_by_id(ids["post"])
    assert post.category_id is None
    assert post.tags == []
    assert post.comments == []
    assert await store.comments.count() == 0
    assert (await store.users.find_by_id(ids["alice"])).comments == []
    assert (await store.users.find_by_id(ids["bob"])).comments == []


@pytest.mark.asyncio
async def test_reconcile_deletes_posts_of_missing_users(store: EntityStore):
    ids = await _seed(store)
    await store.users.delete_by_id(ids["alice"])

    report = await reconcile(store)
    assert report.orphan_posts_deleted == 1
    assert await store.posts.find_by_id(ids["post"]) is None
    assert await store.comments.count() == 0
    assert (await store.categories.find_by_id(ids["cat"])).posts == []
    assert (await store.tags.find_by_id(ids["tag"])).posts == []
    assert (await store.users.find_by_id(ids["bob"])).posts == [ids["bob_post"]]
    assert (await store.users.find_by_id(ids["bob"])).comments == []


@pytest.mark.asyncio
async def test_reconcile_endpoint(async_client: AsyncClient, store: EntityStore):
    ids = await _seed(store)
    await store.tags.pull_from_array(ids["tag"], "posts", ids["post"])

    resp = await async_client.post("/api/v1/maintenance/reconcile")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["back_references_added"] == 1


# ---------------------------------------------------------------------------
# 5. Persistence failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_storage_failure_maps_to_internal_error(store: EntityStore, monkeypatch):
    async def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(store.posts, "find_by_filter", broken)
    with pytest.raises(InternalError) as exc_info:
        await post_service.get_posts(store)
    assert isinstance(exc_info.value.__cause__, OperationalError)


@pytest.mark.asyncio
async def test_storage_failure_returns_500_envelope(async_client: AsyncClient, store: EntityStore, monkeypatch):
    async def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store.categories, "find_by_filter", broken)
    resp = await async_client.get("/api/v1/categories")
    assert resp.status_code == 500
    assert resp.json() == {
        "message": "An unexpected storage error occurred",
        "success": False,
        "data": None,
    }
