"""Tests for the query endpoints (in-process executor, in-memory backends)."""

from uuid import UUID, uuid4

from fastapi.testclient import TestClient

from dreamcut.domain.enums import Intent

BASE = "/api/v1/dreamcut"


def submit(client: TestClient, user_id: str, **overrides) -> dict:
    body = {
        "query": "Make a video about ocean waves",
        "user_id": user_id,
        "assets": [
            {"url": "https://cdn.example.com/wave.jpg", "type": "image", "description": "a wave"},
            {"url": "https://cdn.example.com/voice.mp3", "type": "audio"},
        ],
    }
    body.update(overrides)
    response = client.post(f"{BASE}/queries", json=body)
    assert response.status_code == 202, response.text
    return response.json()


class TestCreateQuery:
    """Tests for submitting queries."""

    def test_accepts_query(self, test_client: TestClient) -> None:
        data = submit(test_client, "api-create")

        assert data["success"] is True
        assert UUID(data["query_id"])
        assert data["request_id"]
        assert data["estimated_duration_seconds"] == 45 + 15 * 2
        assert data["realtime_channels"]["query"] == f"dreamcut_queries:{data['query_id']}"
        assert set(data["realtime_channels"]) == {"query", "assets", "messages"}

    def test_request_id_header_is_echoed(self, test_client: TestClient) -> None:
        response = test_client.post(
            f"{BASE}/queries",
            json={"query": "Make a video", "user_id": "api-request-id"},
            headers={"X-Request-ID": "req-42"},
        )

        assert response.headers["X-Request-ID"] == "req-42"
        assert response.json()["request_id"] == "req-42"

    def test_pipeline_runs_to_completion(self, test_client: TestClient) -> None:
        query_id = submit(test_client, "api-run")["query_id"]

        response = test_client.get(f"{BASE}/queries/{query_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["query"]["status"] == "completed"
        assert data["query"]["progress"] == 100
        assert data["query"]["options"]["intent_source"] == "inferred"
        assert [a["filename"] for a in data["assets"]] == ["wave.jpg", "voice.mp3"]
        assert all(a["status"] == "completed" for a in data["assets"])
        assert data["messages"][0]["type"] == "status"
        assert data["query"]["payload"]["script"] is not None

    def test_declared_intent_is_kept(self, test_client: TestClient) -> None:
        query_id = submit(test_client, "api-intent", intent="image", assets=[])["query_id"]

        data = test_client.get(f"{BASE}/queries/{query_id}").json()

        assert data["query"]["intent"] == "image"
        assert data["query"]["options"]["intent_source"] == "user"
        assert data["query"]["payload"]["summary"]["intent"] == "image"

    def test_empty_query_rejected(self, test_client: TestClient) -> None:
        response = test_client.post(f"{BASE}/queries", json={"query": "", "user_id": "u"})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "VALIDATION_ERROR"
        assert data["error"].startswith("query")

    def test_blank_query_rejected_by_store(self, test_client: TestClient) -> None:
        response = test_client.post(f"{BASE}/queries", json={"query": "   ", "user_id": "u"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_too_many_assets(self, test_client: TestClient) -> None:
        assets = [{"url": f"https://cdn.example.com/{i}.png", "type": "image"} for i in range(21)]
        response = test_client.post(
            f"{BASE}/queries", json={"query": "Make a collage", "user_id": "u", "assets": assets}
        )

        assert response.status_code == 400

    def test_unknown_asset_type(self, test_client: TestClient) -> None:
        response = test_client.post(
            f"{BASE}/queries",
            json={
                "query": "Make a collage",
                "user_id": "u",
                "assets": [{"url": "https://cdn.example.com/a.obj", "type": "mesh"}],
            },
        )

        assert response.status_code == 400

    def test_non_string_profile_rejected(self, test_client: TestClient) -> None:
        response = test_client.post(
            f"{BASE}/queries",
            json={"query": "Make a video", "user_id": "u", "options": {"profile": 3}},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error_code"] == "VALIDATION_ERROR"
        assert "options.profile" in data["error"]

    def test_non_boolean_script_flag_rejected(self, test_client: TestClient) -> None:
        response = test_client.post(
            f"{BASE}/queries",
            json={"query": "Make a video", "user_id": "u", "options": {"generate_script": "yes"}},
        )

        assert response.status_code == 400
        assert "options.generate_script" in response.json()["error"]


class TestReadQueries:
    """Tests for snapshots and history."""

    def test_unknown_query(self, test_client: TestClient) -> None:
        response = test_client.get(f"{BASE}/queries/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_list_user_queries(self, test_client: TestClient) -> None:
        first = submit(test_client, "api-history", assets=[])["query_id"]
        second = submit(test_client, "api-history", assets=[])["query_id"]

        response = test_client.get(f"{BASE}/users/api-history/queries")
        data = response.json()

        assert response.status_code == 200
        assert [q["id"] for q in data["queries"]] == [second, first]
        assert data["limit"] == 10

    def test_list_filters_by_status(self, test_client: TestClient) -> None:
        submit(test_client, "api-filter", assets=[])

        completed = test_client.get(f"{BASE}/users/api-filter/queries?status=completed").json()
        failed = test_client.get(f"{BASE}/users/api-filter/queries?status=failed").json()

        assert len(completed["queries"]) == 1
        assert failed["queries"] == []

    def test_list_rejects_bad_limit(self, test_client: TestClient) -> None:
        response = test_client.get(f"{BASE}/users/api-history/queries?limit=500")

        assert response.status_code == 400


class TestCancelQuery:
    """Tests for cancelling queries."""

    def test_cancel_processing_query(self, test_client: TestClient) -> None:
        store = test_client.app.state.context.store
        query_id = store.create_query(
            "api-cancel", "Make a video", Intent.VIDEO, [], {"intent_source": "user"}
        )

        response = test_client.post(f"{BASE}/queries/{query_id}/cancel")

        assert response.status_code == 200
        assert response.json() == {"success": True, "query_id": str(query_id), "status": "failed"}
        snapshot = test_client.get(f"{BASE}/queries/{query_id}").json()
        assert snapshot["query"]["error_message"] == "Cancelled"
        assert snapshot["messages"][-1]["content"] == "Cancelled at your request."

    def test_cancel_finished_query(self, test_client: TestClient) -> None:
        query_id = submit(test_client, "api-cancel-done", assets=[])["query_id"]

        response = test_client.post(f"{BASE}/queries/{query_id}/cancel")

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_TRANSITION"

    def test_cancel_unknown_query(self, test_client: TestClient) -> None:
        response = test_client.post(f"{BASE}/queries/{uuid4()}/cancel")

        assert response.status_code == 404


class TestProfiles:
    """Tests for the profile listing."""

    def test_lists_profiles(self, test_client: TestClient) -> None:
        response = test_client.get(f"{BASE}/profiles")

        assert response.status_code == 200
        names = [p["name"] for p in response.json()]
        assert len(names) == 10
        assert "ads_commercial" in names
