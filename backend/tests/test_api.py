"""
RestGate Backend — End-to-End API Tests
=======================================

What:  Full HTTP round trips through create_app() with a temporary SQLite DB.
How:   httpx AsyncClient over ASGITransport; no server process.

What we test:
    ✅ Gate order: unknown route → 404 before auth → 401
    ✅ Verbs the router does not know (OPTIONS, HEAD) → 404, never 405
    ✅ CRUD lifecycle with status codes and envelopes
    ✅ PUT vs PATCH semantics
    ✅ Pagination envelope and query parameters over HTTP
    ✅ JSON / XML negotiation for successes and errors
    ✅ Cache headers on reads, request IDs on every response
    ✅ Rate limiting in production only
    ✅ Health and session endpoints
    ✅ Catch-all 500 handler, with detail hidden in production
"""

import json
import xml.etree.ElementTree as ET
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from restgate.main import create_app
from restgate.services.rate_limiter import InMemoryRateLimitStore

API = "/api/v1"


async def _create_post(client, **overrides):
    payload = {"title": "Hello", "content": "First post", **overrides}
    response = await client.post(f"{API}/post", json=payload)
    assert response.status_code == 201
    return response.json()


# ══════════════════════════════════════════════════════════════════════════
# Gates
# ══════════════════════════════════════════════════════════════════════════

class TestGates:
    @pytest.mark.asyncio
    async def test_unknown_route_is_404_even_without_credentials(self, anon_client, session_provider):
        response = await anon_client.get(f"{API}/users")

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == "not found"
        assert "timestamp" in body
        assert session_provider.calls == 0

    @pytest.mark.asyncio
    async def test_unknown_route_with_id_is_404(self, client):
        response = await client.delete(f"{API}/users/123")
        assert response.status_code == 404
        assert response.json()["status"] == "not found"

    @pytest.mark.asyncio
    async def test_unmatched_path_gets_same_envelope(self, client):
        response = await client.get("/nowhere/at/all")
        assert response.status_code == 404
        assert response.json()["status"] == "not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["OPTIONS", "HEAD"])
    @pytest.mark.parametrize("path", [f"{API}/nosuchthing", f"{API}/post", f"{API}/post/1"])
    async def test_unrouted_verb_is_404(self, client, method, path):
        response = await client.request(method, path)
        assert response.status_code == 404
        if method == "OPTIONS":
            body = response.json()
            assert body["status"] == "not found"
            assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_missing_credentials_is_401(self, anon_client):
        response = await anon_client.get(f"{API}/post")

        assert response.status_code == 401
        body = response.json()
        assert body["status"] == "unauthorized"
        assert body["message"] == "You are not authorized to access this resource"

    @pytest.mark.asyncio
    async def test_wrong_token_is_401_and_nothing_written(self, app, client):
        transport = ASGITransport(app=app)
        async with AsyncClient(
            transport=transport, base_url="http://test", headers={"Authorization": "Bearer wrong"}
        ) as intruder:
            response = await intruder.post(f"{API}/post", json={"title": "x", "content": "y"})
        assert response.status_code == 401

        listing = await client.get(f"{API}/post")
        assert listing.json()["totalItems"] == 0

    @pytest.mark.asyncio
    async def test_auth_disabled_lets_requests_through(self, test_settings, session_factory):
        settings = test_settings.model_copy(update={"auth_enabled": False})
        app = create_app(settings, session_factory=session_factory)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as anon:
            response = await anon.get(f"{API}/post")
        assert response.status_code == 200


# ══════════════════════════════════════════════════════════════════════════
# CRUD
# ══════════════════════════════════════════════════════════════════════════

class TestCrud:
    @pytest.mark.asyncio
    async def test_lifecycle(self, client, post_payload):
        created = await client.post(f"{API}/post", json=post_payload)
        assert created.status_code == 201
        post = created.json()
        assert post["title"] == "Hello"
        assert post["published"] is True

        fetched = await client.get(f"{API}/post/{post['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == post["id"]

        deleted = await client.delete(f"{API}/post/{post['id']}")
        assert deleted.status_code == 200
        assert deleted.json()["status"] == "success"
        assert deleted.json()["message"] == "Resource deleted successfully"

        gone = await client.get(f"{API}/post/{post['id']}")
        assert gone.status_code == 404
        assert gone.json()["message"] == "Resource not found"

    @pytest.mark.asyncio
    async def test_invalid_body_is_400(self, client):
        response = await client.post(f"{API}/post", json={"content": "missing title"})

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "error"
        assert "title" in body["message"]

    @pytest.mark.asyncio
    async def test_non_json_body_is_400(self, client):
        response = await client.post(
            f"{API}/post", content=b"title=x", headers={"Content-Type": "application/x-www-form-urlencoded"}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON body"

    @pytest.mark.asyncio
    async def test_patch_keeps_unsent_fields(self, client):
        post = await _create_post(client, published=True, author_id="u1")

        response = await client.patch(f"{API}/post/{post['id']}", json={"title": "Renamed"})

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Renamed"
        assert body["published"] is True
        assert body["author_id"] == "u1"

    @pytest.mark.asyncio
    async def test_put_replaces_resource(self, client):
        post = await _create_post(client, published=True, author_id="u1")

        response = await client.put(
            f"{API}/post/{post['id']}", json={"title": "Replaced", "content": "New body"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Replaced"
        assert body["published"] is False
        assert "author_id" not in body or body["author_id"] is None

    @pytest.mark.asyncio
    async def test_put_with_partial_body_is_400(self, client):
        post = await _create_post(client)
        response = await client.put(f"{API}/post/{post['id']}", json={"title": "Only"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
    async def test_missing_id_is_404(self, client, method):
        response = await client.request(
            method, f"{API}/post/does-not-exist", json={"title": "t", "content": "c"}
        )
        assert response.status_code == 404
        assert response.json() == {"status": "error", "message": "Resource not found"}

    @pytest.mark.asyncio
    async def test_unsupported_verb_on_collection_is_404(self, client):
        response = await client.delete(f"{API}/post")
        assert response.status_code == 404
        assert sorted(response.json()) == ["status", "timestamp"]
        assert response.json()["status"] == "not found"

    @pytest.mark.asyncio
    async def test_comments_route(self, client):
        post = await _create_post(client)
        response = await client.post(
            f"{API}/comment", json={"post_id": post["id"], "body": "Nice", "author_name": "Ann"}
        )
        assert response.status_code == 201

        listing = await client.get(
            f"{API}/comment", params={"filter": json.dumps({"post_id": post["id"]})}
        )
        assert listing.json()["totalItems"] == 1


# ══════════════════════════════════════════════════════════════════════════
# Listing
# ══════════════════════════════════════════════════════════════════════════

class TestListing:
    @pytest_asyncio.fixture
    async def seeded(self, client):
        for i in range(1, 8):
            await _create_post(client, title=f"Post {i}", published=i % 2 == 1)

    @pytest.mark.asyncio
    async def test_pagination_envelope(self, client, seeded):
        response = await client.get(f"{API}/post", params={"page": 2, "limit": 3})

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 3
        assert body["totalItems"] == 7
        assert body["currentPage"] == 2
        assert body["itemsPerPage"] == 3
        assert body["totalPages"] == 3
        assert body["hasNextPage"] is True
        assert body["hasPreviousPage"] is True

    @pytest.mark.asyncio
    async def test_defaults_for_garbage_parameters(self, client, seeded):
        response = await client.get(f"{API}/post", params={"page": "abc", "limit": ""})
        body = response.json()
        assert body["currentPage"] == 1
        assert body["itemsPerPage"] == 10
        assert body["totalPages"] == 1

    @pytest.mark.asyncio
    async def test_enormous_page_is_empty_not_500(self, client, seeded):
        response = await client.get(f"{API}/post", params={"page": "100000000000000000000"})

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == []
        assert body["totalItems"] == 7
        assert body["hasNextPage"] is False

    @pytest.mark.asyncio
    async def test_sort_and_filter(self, client, seeded):
        response = await client.get(
            f"{API}/post",
            params={"sortBy": "title", "sortOrder": "desc", "filter": json.dumps({"published": True})},
        )
        body = response.json()
        assert body["totalItems"] == 4
        assert [row["title"] for row in body["data"]] == ["Post 7", "Post 5", "Post 3", "Post 1"]

    @pytest.mark.asyncio
    async def test_malformed_filter_is_400(self, client):
        response = await client.get(f"{API}/post", params={"filter": "{broken"})
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid filter")

    @pytest.mark.asyncio
    async def test_unknown_filter_field_is_400(self, client):
        response = await client.get(f"{API}/post", params={"filter": json.dumps({"secret": 1})})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cache_headers_on_reads(self, client, seeded):
        response = await client.get(f"{API}/post")

        assert response.headers["cache-control"] == "public, max-age=60"
        assert response.headers["etag"].startswith('"')

        again = await client.get(f"{API}/post")
        assert again.headers["etag"] == response.headers["etag"]

    @pytest.mark.asyncio
    async def test_no_cache_headers_on_writes_or_errors(self, client):
        created = await client.post(f"{API}/post", json={"title": "t", "content": "c"})
        assert "etag" not in created.headers

        missing = await client.get(f"{API}/post/nope")
        assert "cache-control" not in missing.headers


# ══════════════════════════════════════════════════════════════════════════
# Content Negotiation
# ══════════════════════════════════════════════════════════════════════════

class TestNegotiation:
    @pytest.mark.asyncio
    async def test_xml_collection(self, client):
        await _create_post(client)

        response = await client.get(f"{API}/post", headers={"Accept": "application/xml"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        root = ET.fromstring(response.content)
        assert root.tag == "response"
        assert root.findtext("totalItems") == "1"
        assert root.find("data").find("item").findtext("title") == "Hello"

    @pytest.mark.asyncio
    async def test_xml_errors(self, anon_client):
        response = await anon_client.get(f"{API}/post", headers={"Accept": "application/xml"})
        assert response.status_code == 401
        assert ET.fromstring(response.content).findtext("status") == "unauthorized"

        response = await anon_client.get(f"{API}/nothing", headers={"Accept": "application/xml"})
        assert response.status_code == 404
        assert ET.fromstring(response.content).findtext("status") == "not found"

    @pytest.mark.asyncio
    async def test_json_for_other_accept_values(self, client):
        response = await client.get(f"{API}/post", headers={"Accept": "text/html"})
        assert response.headers["content-type"].startswith("application/json")

    @pytest.mark.asyncio
    async def test_xml_and_json_have_different_etags(self, client):
        await _create_post(client)
        as_json = await client.get(f"{API}/post")
        as_xml = await client.get(f"{API}/post", headers={"Accept": "application/xml"})
        assert as_json.headers["etag"] != as_xml.headers["etag"]


# ══════════════════════════════════════════════════════════════════════════
# Rate Limiting
# ══════════════════════════════════════════════════════════════════════════

class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_not_enforced_outside_production(self, client):
        for _ in range(3):
            response = await client.get("/api/health")
            assert "x-ratelimit-limit" not in response.headers

    @pytest.mark.asyncio
    async def test_enforced_in_production(self, test_settings, session_factory, session_provider):
        settings = test_settings.model_copy(
            update={"environment": "production", "rate_limiter_points": 2}
        )
        app = create_app(
            settings,
            session_factory=session_factory,
            session_provider=session_provider,
            rate_limit_store=InMemoryRateLimitStore(points=2, duration=60),
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            first = await c.get("/api/health")
            second = await c.get("/api/health")
            third = await c.get("/api/health", headers={"Accept": "application/xml"})

        assert first.headers["x-ratelimit-limit"] == "2"
        assert first.headers["x-ratelimit-remaining"] == "1"
        assert first.headers["x-ratelimit-reset"].endswith("GMT")
        assert int(first.headers["retry-after"]) >= 1
        assert second.headers["x-ratelimit-remaining"] == "0"

        assert third.status_code == 429
        assert int(third.headers["retry-after"]) >= 1
        root = ET.fromstring(third.content)
        assert root.findtext("status") == "too many requests, please try again later"
        assert float(root.findtext("retryAfter")) > 0
        assert root.findtext("ip") == "127.0.0.1"


# ══════════════════════════════════════════════════════════════════════════
# Ancillary endpoints
# ══════════════════════════════════════════════════════════════════════════

class TestHealthAndSession:
    @pytest.mark.asyncio
    async def test_health_is_public(self, anon_client):
        response = await anon_client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "x-request-id" in response.headers

    @pytest.mark.asyncio
    async def test_health_reports_database_outage(self, app, anon_client):
        broken = MagicMock(side_effect=RuntimeError("db down"))
        app.state.services.session_factory = broken

        response = await anon_client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"

    @pytest.mark.asyncio
    async def test_session_lookup(self, client, anon_client):
        response = await client.get("/api/auth/session")
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "test@example.com"

        response = await anon_client.get("/api/auth/session")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/api/health", headers={"X-Request-ID": "trace-42"})
        assert response.headers["x-request-id"] == "trace-42"


# ══════════════════════════════════════════════════════════════════════════
# Global error boundary
# ══════════════════════════════════════════════════════════════════════════

class TestErrorBoundary:
    @pytest.mark.asyncio
    async def test_unexpected_error_is_500_with_detail(self, app, client):
        app.state.services.dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("kaboom"))

        response = await client.get(f"{API}/post")

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["message"] == "Internal Server Error"
        assert body["error"] == "kaboom"

    @pytest.mark.asyncio
    async def test_production_hides_detail(self, test_settings, session_factory, session_provider):
        settings = test_settings.model_copy(update={"environment": "production"})
        app = create_app(settings, session_factory=session_factory, session_provider=session_provider)
        app.state.services.dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("kaboom"))

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(
            transport=transport, base_url="http://test", headers={"Authorization": "Bearer test-token"}
        ) as c:
            response = await c.get(f"{API}/post")

        assert response.status_code == 500
        assert response.json()["message"] == "Internal Server Error"
        assert "error" not in response.json()
