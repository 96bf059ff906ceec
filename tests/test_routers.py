"""
Tests for the HTTP endpoints.
"""

import json
from datetime import datetime, timezone

import pytest

from content_service.domain.entities import EditStatus


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_ready(self, client):
        response = await client.get("/api/v1/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "healthy", "cache": "healthy"}
        assert response.json()["pool"]["connected"] is True

    async def test_request_id_echoed(self, client):
        response = await client.get("/api/v1/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    async def test_metrics(self, client):
        await client.get("/api/v1/health")
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "content_http_requests_total" in response.text


class TestAuthors:
    """Test signup, login and author reads."""

    async def test_signup_and_login(self, client):
        response = await client.post(
            "/api/v1/authors/signup",
            json={"name": "Ada", "email": "ada@example.com", "password": "correct-horse"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["author"]["email"] == "ada@example.com"
        assert "password_hash" not in body["author"]
        assert body["access_token"]

        response = await client.post(
            "/api/v1/authors/login",
            json={"email": "ada@example.com", "password": "correct-horse"},
        )
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    async def test_signup_duplicate_email(self, client):
        payload = {"name": "Ada", "email": "ada@example.com", "password": "correct-horse"}
        await client.post("/api/v1/authors/signup", json=payload)

        response = await client.post("/api/v1/authors/signup", json=payload)
        assert response.status_code == 409
        assert response.json()["details"]["field"] == "email"

    async def test_login_wrong_password(self, client, create_author):
        await create_author(name="Ada", password="correct-horse")

        response = await client.post(
            "/api/v1/authors/login", json={"email": "ada@example.com", "password": "nope-nope"}
        )
        assert response.status_code == 401

    async def test_list_requires_token(self, client):
        response = await client.get("/api/v1/authors")
        assert response.status_code == 401

    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/v1/authors", headers={"Authorization": "Bearer garbage"}
        )
        assert response.status_code == 401

    async def test_list_from_cache(self, client, signed_in, create_author):
        _, headers = signed_in
        await create_author(name="Ada")

        response = await client.get("/api/v1/authors", headers=headers)
        assert response.status_code == 200
        assert [a["name"] for a in response.json()] == ["Grace", "Ada"]
        assert all("password_hash" not in a for a in response.json())

    async def test_get_missing(self, client, signed_in):
        _, headers = signed_in
        response = await client.get("/api/v1/authors/999", headers=headers)
        assert response.status_code == 404

    async def test_order_by_password_hash_is_400(self, client, signed_in, create_author):
        _, headers = signed_in
        await create_author(name="Ada")

        response = await client.get(
            "/api/v1/authors", params={"order_by": "password_hash"}, headers=headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidFilterField"


class TestPosts:
    """Test post CRUD over HTTP."""

    async def test_crud(self, client, signed_in):
        _, headers = signed_in

        response = await client.post(
            "/api/v1/posts", json={"title": "Hello", "content": "World"}, headers=headers
        )
        assert response.status_code == 201
        post_id = response.json()["id"]

        response = await client.patch(
            f"/api/v1/posts/{post_id}", json={"weight": 5}, headers=headers
        )
        assert response.status_code == 204

        response = await client.get(f"/api/v1/posts/{post_id}", headers=headers)
        assert response.json()["weight"] == 5

        response = await client.delete(f"/api/v1/posts/{post_id}", headers=headers)
        assert response.status_code == 204
        response = await client.delete(f"/api/v1/posts/{post_id}", headers=headers)
        assert response.status_code == 404

    async def test_list_cached_and_filtered(self, client, signed_in, create_post):
        _, headers = signed_in
        light = await create_post(title="light", weight=1)
        heavy = await create_post(title="heavy", weight=9)

        response = await client.get("/api/v1/posts", headers=headers)
        assert [p["id"] for p in response.json()] == [heavy, light]

        response = await client.get(
            "/api/v1/posts",
            params={"filter": json.dumps({"weight": {"$lt": 5}})},
            headers=headers,
        )
        assert [p["id"] for p in response.json()] == [light]

    async def test_cached_list_is_paginated(self, client, signed_in, create_post):
        _, headers = signed_in
        ids = [await create_post(title=f"p{i}", weight=10 - i) for i in range(4)]

        response = await client.get(
            "/api/v1/posts", params={"limit": 2, "offset": 1}, headers=headers
        )
        assert [p["id"] for p in response.json()] == ids[1:3]

    async def test_order_by(self, client, signed_in, create_post):
        _, headers = signed_in
        b = await create_post(title="b")
        a = await create_post(title="a")

        response = await client.get(
            "/api/v1/posts", params={"order_by": "title"}, headers=headers
        )
        assert [p["id"] for p in response.json()] == [a, b]

    @pytest.mark.parametrize(
        "params",
        [
            {"filter": json.dumps({"secret": 1})},
            {"filter": json.dumps({"weight": {"$in": 3}})},
            {"filter": "{not json"},
            {"order_by": "!secret"},
        ],
    )
    async def test_bad_listing_is_400(self, client, signed_in, params):
        _, headers = signed_in
        response = await client.get("/api/v1/posts", params=params, headers=headers)
        assert response.status_code == 400

    async def test_negative_limit_is_422(self, client, signed_in):
        _, headers = signed_in
        response = await client.get("/api/v1/posts", params={"limit": -1}, headers=headers)
        assert response.status_code == 422

    async def test_filter_by_timestamp_string(self, client, signed_in, create_post):
        _, headers = signed_in
        since = datetime.now(timezone.utc).strftime("%Y-%m-%dT00:00:00Z")
        post_id = await create_post()

        response = await client.get(
            "/api/v1/posts",
            params={"filter": json.dumps({"created_at": {"$gte": since}})},
            headers=headers,
        )
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [post_id]

    async def test_unparseable_timestamp_is_400(self, client, signed_in):
        _, headers = signed_in
        response = await client.get(
            "/api/v1/posts",
            params={"filter": json.dumps({"updated_at": {"$lt": "soon"}})},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidFilterOperator"

    async def test_weight_out_of_range_is_422(self, client, signed_in):
        _, headers = signed_in
        response = await client.post(
            "/api/v1/posts",
            json={"title": "Heavy", "content": "c", "weight": 2**40},
            headers=headers,
        )
        assert response.status_code == 422

    async def test_delete_referenced_post_is_409(
        self, client, signed_in, create_post, create_edit
    ):
        author_id, headers = signed_in
        post_id = await create_post()
        await create_edit(post_id=post_id, editor_id=author_id)

        response = await client.delete(f"/api/v1/posts/{post_id}", headers=headers)
        assert response.status_code == 409
        assert response.json()["error"] == "EntityReferenced"


class TestEdits:
    """Test edit suggestions over HTTP."""

    async def test_editor_comes_from_token(self, client, signed_in, create_post):
        author_id, headers = signed_in
        post_id = await create_post()

        response = await client.post(
            "/api/v1/edits",
            json={"post_id": post_id, "new_content": "Better", "editor_id": 999},
            headers=headers,
        )
        assert response.status_code == 201
        edit_id = response.json()["id"]

        edit = (await client.get(f"/api/v1/edits/{edit_id}", headers=headers)).json()
        assert edit["editor_id"] == author_id
        assert edit["status"] == EditStatus.PENDING.value

    async def test_review_flow(self, client, signed_in, create_post, create_edit):
        author_id, headers = signed_in
        post_id = await create_post()
        edit_id = await create_edit(post_id=post_id, editor_id=author_id)

        response = await client.patch(
            f"/api/v1/edits/{edit_id}", json={"status": "ACCEPTED"}, headers=headers
        )
        assert response.status_code == 204

        response = await client.patch(
            f"/api/v1/edits/{edit_id}", json={"status": "REJECTED"}, headers=headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"

    async def test_list_by_post_and_status(self, client, signed_in, create_post, create_edit):
        author_id, headers = signed_in
        post_a = await create_post(title="a")
        post_b = await create_post(title="b")
        wanted = await create_edit(post_id=post_a, editor_id=author_id)
        await create_edit(post_id=post_b, editor_id=author_id)

        response = await client.get(
            "/api/v1/edits", params={"post_id": post_a, "status": "PENDING"}, headers=headers
        )
        assert [e["id"] for e in response.json()] == [wanted]

    async def test_unknown_post_is_409(self, client, signed_in):
        _, headers = signed_in
        response = await client.post(
            "/api/v1/edits", json={"post_id": 4242, "new_content": "x"}, headers=headers
        )
        assert response.status_code == 409
