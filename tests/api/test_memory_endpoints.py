"""
API integration tests for the memory bridge.

Runs the full application in-process with TestClient against a private
SQLite database and verifies response shapes and status codes.
"""

from fastapi.testclient import TestClient

from memory_bridge.main import create_app

from tests.conftest import TEST_TOKEN, FakeEmbeddingService


class TestAuthentication:

    def test_missing_token_is_rejected(self, client):
        response = client.get("/memories/all")

        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "Invalid or missing token"}

    def test_wrong_token_is_rejected(self, client):
        response = client.post("/memories", json={"text": "x"}, headers={"x-mcp-token": "wrong"})

        assert response.status_code == 401

    def test_token_query_parameter(self, client):
        response = client.get("/memories/all", params={"token": TEST_TOKEN})

        assert response.status_code == 200

    def test_stream_requires_token(self, client):
        response = client.get("/mcp/sse")

        assert response.status_code == 401

    def test_health_routes_are_open(self, client):
        assert client.get("/ping").status_code == 200
        assert client.get("/version").status_code == 200
        assert client.get("/healthz").status_code == 200


class TestIngest:

    def test_create_then_duplicate(self, client, auth_headers):
        """Posting the same text twice yields one row and a duplicate report."""
        first = client.post("/memories", json={"text": "Meeting with Adam tomorrow"}, headers=auth_headers)

        assert first.status_code == 200
        created = first.json()
        assert created["ok"] is True
        assert created["id"]
        assert created["last_updated"]
        assert "error" not in created

        second = client.post("/memories", json={"text": "  meeting with ADAM tomorrow"}, headers=auth_headers)

        assert second.status_code == 200
        duplicate = second.json()
        assert duplicate["ok"] is False
        assert duplicate["error"] == "duplicate"
        assert duplicate["existing"] == {"id": created["id"], "text": "Meeting with Adam tomorrow"}
        assert "similarity" not in duplicate

        listing = client.get("/memories/all", headers=auth_headers).json()
        assert listing["count"] == 1

    def test_accepted_tag_shapes(self, client, auth_headers, sample_memories):
        for payload in sample_memories:
            response = client.post("/memories", json=payload, headers=auth_headers)
            assert response.json()["ok"] is True

        work = client.get("/memories/by-tag", params={"tag": "work"}, headers=auth_headers).json()
        errands = client.get("/memories/by-tag", params={"tag": "errands"}, headers=auth_headers).json()

        assert work["count"] == 2
        assert errands["memories"][0]["tags"] == ["errands", "home"]

    def test_missing_text(self, client, auth_headers):
        response = client.post("/memories", json={"type": "note"}, headers=auth_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["ok"] is False
        assert "text" in body["error"]

    def test_blank_text(self, client, auth_headers):
        response = client.post("/memories", json={"text": "   "}, headers=auth_headers)

        assert response.status_code == 400

    def test_invalid_tags(self, client, auth_headers):
        response = client.post("/memories", json={"text": "x", "tags": {"a": 1}}, headers=auth_headers)

        assert response.status_code == 400

    def test_semantic_duplicate(self, client, auth_headers):
        client.app.state.memory_service.embedding_service = FakeEmbeddingService({
            "Dinner with Sam on Friday": [1.0, 0.0],
            "Friday dinner with Sam": [0.98, 0.1],
        })
        first = client.post("/memories", json={"text": "Dinner with Sam on Friday"}, headers=auth_headers).json()

        body = client.post("/memories", json={"text": "Friday dinner with Sam"}, headers=auth_headers).json()

        assert body["ok"] is False
        assert body["error"] == "semantic duplicate"
        assert body["existing"]["id"] == first["id"]
        assert body["similarity"] > 0.9


class TestRecall:

    def test_recall_scenario(self, client, auth_headers):
        client.post("/memories", json={"text": "Meeting with Adam tomorrow at 4pm"}, headers=auth_headers)
        client.post("/memories", json={"text": "Lunch with Eve"}, headers=auth_headers)

        response = client.get("/memories/recall", params={"q": "adam"}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["found"] is True
        assert body["query"] == "adam"
        assert body["count"] == 1
        memory = body["memories"][0]
        assert memory["text"] == "Meeting with Adam tomorrow at 4pm"
        assert "embedding" not in memory
        assert memory["has_embedding"] is False

    def test_search_alias_and_empty_result(self, client, auth_headers):
        response = client.get("/memories/search", params={"q": "nobody"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"ok": True, "found": False, "query": "nobody", "count": 0, "memories": []}

    def test_missing_query(self, client, auth_headers):
        response = client.get("/memories/recall", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_limit_bounds(self, client, auth_headers):
        response = client.get("/memories/recall", params={"q": "x", "limit": 0}, headers=auth_headers)

        assert response.status_code == 400

    def test_by_type_and_today(self, client, auth_headers):
        client.post("/memories", json={"text": "Dentist at 9", "type": "event"}, headers=auth_headers)
        client.post("/memories", json={"text": "Call mom"}, headers=auth_headers)

        events = client.get("/memories/by-type", params={"type": "event"}, headers=auth_headers).json()
        today = client.get("/memories/today", headers=auth_headers).json()

        assert [m["text"] for m in events["memories"]] == ["Dentist at 9"]
        assert today["count"] == 2

    def test_filters_require_a_value(self, client, auth_headers):
        assert client.get("/memories/by-tag", headers=auth_headers).status_code == 400
        assert client.get("/memories/by-type", params={"type": " "}, headers=auth_headers).status_code == 400


class TestSingleMemory:

    def test_get_and_delete(self, client, auth_headers):
        created = client.post("/memories", json={"text": "temporary"}, headers=auth_headers).json()

        fetched = client.get(f"/memories/{created['id']}", headers=auth_headers)
        assert fetched.status_code == 200
        assert fetched.json()["memory"]["id"] == created["id"]

        deleted = client.delete(f"/memories/{created['id']}", headers=auth_headers)
        assert deleted.status_code == 200
        assert deleted.json() == {"ok": True, "deleted": True, "id": created["id"]}

        assert client.get(f"/memories/{created['id']}", headers=auth_headers).status_code == 404

    def test_delete_missing(self, client, auth_headers):
        response = client.delete("/memories/does-not-exist", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"ok": False, "deleted": False, "id": "does-not-exist", "error": "not found"}

    def test_get_missing(self, client, auth_headers):
        response = client.get("/memories/does-not-exist", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "not found", "id": "does-not-exist"}


class TestDiagnostics:

    def test_ping(self, client):
        body = client.get("/ping").json()

        assert body["ok"] is True
        assert body["pong"] is True

    def test_version(self, client):
        assert client.get("/version").json() == {"ok": True, "name": "Memory Bridge API", "version": "1.0.0"}

    def test_healthz(self, client):
        body = client.get("/healthz").json()

        assert body["status"] == "healthy"
        assert body["components"] == {"database": True, "embedding_provider": False, "summarizer": False}
        assert body["version"] == "1.0.0"

    def test_unknown_route(self, client):
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json()["ok"] is False


class TestApplicationWiring:

    def test_summarizer_has_its_own_rate_limiter(self, settings):
        app = create_app(settings.model_copy(update={"gemini_api_key": "test-key"}))

        summarizer = app.state.summarizer
        embedding_service = app.state.embedding_service
        assert summarizer is not None
        assert summarizer.rate_limiter is not embedding_service.rate_limiter
        assert summarizer.rate_limiter.max_requests_per_minute == settings.gemini_summary_rate_limit_per_minute
        assert app.state.change_stream.summarizer is summarizer

    def test_no_summarizer_without_api_key(self, client):
        assert client.app.state.summarizer is None

    def test_filter_listings_share_one_limit(self, settings, auth_headers):
        app = create_app(settings.model_copy(update={"filter_list_limit": 1}))
        with TestClient(app) as limited:
            for text in ("Dentist at 9", "Standup at 10"):
                limited.post("/memories", json={"text": text, "type": "event", "tags": ["work"]}, headers=auth_headers)

            by_type = limited.get("/memories/by-type", params={"type": "event"}, headers=auth_headers).json()
            by_tag = limited.get("/memories/by-tag", params={"tag": "work"}, headers=auth_headers).json()

        assert by_type["count"] == 1
        assert by_tag["count"] == 1
