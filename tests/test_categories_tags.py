"""
Category and tag endpoint tests: uniqueness, listing posts by term, and
the unlink-before-delete cascade.
"""
import pytest
from httpx import AsyncClient


async def _setup_post(client: AsyncClient, **post_fields) -> tuple[int, int]:
    """Create a user and one post with *post_fields*; returns (user_id, post_id)."""
    user_id = (await client.post("/api/v1/users", json={
        "username": "termuser", "email": "termuser@example.com", "password_hash": "x",
    })).json()["data"]["id"]
    resp = await client.post(
        "/api/v1/posts",
        json={"title": "Post", "content": "Body", **post_fields},
        headers={"X-User-Id": str(user_id)},
    )
    assert resp.status_code == 201
    return user_id, resp.json()["data"]["id"]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_category_name_returns_409(async_client: AsyncClient):
    first = await async_client.post("/api/v1/categories", json={"name": "Tech"})
    second = await async_client.post("/api/v1/categories", json={"name": "Tech"})
    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["message"] == "Category name already exists"
    assert len((await async_client.get("/api/v1/categories")).json()["data"]) == 1


@pytest.mark.asyncio
async def test_list_categories_sorted_by_name(async_client: AsyncClient):
    for name in ("Zebra", "Alpha", "Mid"):
        await async_client.post("/api/v1/categories", json={"name": name})
    names = [c["name"] for c in (await async_client.get("/api/v1/categories")).json()["data"]]
    assert names == ["Alpha", "Mid", "Zebra"]


@pytest.mark.asyncio
async def test_rename_category(async_client: AsyncClient):
    cat = (await async_client.post("/api/v1/categories", json={"name": "Old"})).json()["data"]["id"]
    resp = await async_client.patch(f"/api/v1/categories/{cat}", json={"name": "New", "description": "d"})
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "New"
    assert resp.json()["data"]["description"] == "d"


@pytest.mark.asyncio
async def test_rename_category_to_blank_returns_400(async_client: AsyncClient):
    cat = (await async_client.post("/api/v1/categories", json={"name": "Old"})).json()["data"]["id"]
    resp = await async_client.patch(f"/api/v1/categories/{cat}", json={"name": "  "})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_posts_by_category(async_client: AsyncClient):
    cat = (await async_client.post("/api/v1/categories", json={"name": "Tech"})).json()["data"]["id"]
    _, post_id = await _setup_post(async_client, category_id=cat)

    resp = await async_client.get(f"/api/v1/categories/{cat}/posts")
    assert resp.status_code == 200
    assert [p["id"] for p in resp.json()["data"]] == [post_id]


@pytest.mark.asyncio
async def test_posts_by_unknown_category_returns_404(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/categories/404/posts")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_category_unsets_post_reference(async_client: AsyncClient):
    """Category link, unlink and delete: the post survives with no category."""
    cat = (await async_client.post("/api/v1/categories", json={"name": "Tech"})).json()["data"]["id"]
    _, post_id = await _setup_post(async_client, category_id=cat)

    resp = await async_client.delete(f"/api/v1/categories/{cat}")
    assert resp.status_code == 200
    assert (await async_client.get(f"/api/v1/categories/{cat}")).status_code == 404

    post = (await async_client.get(f"/api/v1/posts/{post_id}")).json()["data"]
    assert post["category_id"] is None


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_tag_name_returns_409(async_client: AsyncClient):
    await async_client.post("/api/v1/tags", json={"name": "python"})
    resp = await async_client.post("/api/v1/tags", json={"name": "python"})
    assert resp.status_code == 409
    assert resp.json()["message"] == "Tag name already exists"


@pytest.mark.asyncio
async def test_posts_by_tag(async_client: AsyncClient):
    tag = (await async_client.post("/api/v1/tags", json={"name": "python"})).json()["data"]["id"]
    _, post_id = await _setup_post(async_client, tag_ids=[tag])

    resp = await async_client.get(f"/api/v1/tags/{tag}/posts")
    assert resp.status_code == 200
    assert [p["id"] for p in resp.json()["data"]] == [post_id]


@pytest.mark.asyncio
async def test_delete_tag_pulls_it_from_posts(async_client: AsyncClient):
    keep = (await async_client.post("/api/v1/tags", json={"name": "keep"})).json()["data"]["id"]
    drop = (await async_client.post("/api/v1/tags", json={"name": "drop"})).json()["data"]["id"]
    _, post_id = await _setup_post(async_client, tag_ids=[keep, drop])

    resp = await async_client.delete(f"/api/v1/tags/{drop}")
    assert resp.status_code == 200

    post = (await async_client.get(f"/api/v1/posts/{post_id}")).json()["data"]
    assert post["tags"] == [keep]
    assert (await async_client.get(f"/api/v1/tags/{keep}")).json()["data"]["posts"] == [post_id]


@pytest.mark.asyncio
async def test_delete_unknown_tag_returns_404(async_client: AsyncClient):
    resp = await async_client.delete("/api/v1/tags/12345")
    assert resp.status_code == 404
