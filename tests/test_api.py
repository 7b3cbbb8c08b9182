"""HTTP API tests against in-memory services and the mock provider."""

import json

import pytest
from fastapi.testclient import TestClient

from api.main import create_app, status_for
from promptopt.history import ChainNotFoundError, RecordNotFoundError
from promptopt.llm import APIError, MockProvider
from promptopt.prompt import OptimizationError
from promptopt.services import build_services
from promptopt.storage import MemoryStorageProvider


def parse_sse(text):
    events = []
    for block in text.strip().split("\n\n"):
        event_line, data_line = block.split("\n")
        events.append((event_line[len("event: "):], json.loads(data_line[len("data: "):])))
    return events


@pytest.fixture
def provider(mock_config):
    return MockProvider(mock_config, response="Better prompt here")


@pytest.fixture
def client(settings, model_defaults, provider):
    storage = MemoryStorageProvider()

    def factory(resolved):
        return build_services(resolved, storage=storage, model_defaults=model_defaults, providers={"mock": provider})

    with TestClient(create_app(settings, services_factory=factory)) as test_client:
        yield test_client


def optimize(client, prompt="write a poem", **extra):
    response = client.post("/optimize", json={"prompt": prompt, "model_key": "mock", **extra})
    assert response.status_code == 200, response.text
    return response.json()


class TestStatusMapping:
    def test_walks_cause_chain(self):
        error = OptimizationError("Optimization failed", "p")
        error.__cause__ = APIError("down")
        assert status_for(error) == 502

    def test_not_found(self):
        assert status_for(RecordNotFoundError("x")) == 404
        assert status_for(ChainNotFoundError("x")) == 404

    def test_unmapped_is_500(self):
        assert status_for(RuntimeError("boom")) == 500


class TestMeta:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_version(self, client):
        assert "data_schema_version" in client.get("/version").json()


class TestOptimize:
    def test_creates_chain(self, client):
        chain = optimize(client)
        assert chain["root_record"]["optimized_prompt"] == "Better prompt here"
        assert chain["current_record"]["version"] == 1
        assert len(client.get("/history").json()) == 1

    def test_empty_prompt_is_422(self, client):
        response = client.post("/optimize", json={"prompt": " ", "model_key": "mock"})
        assert response.status_code == 422
        assert "Prompt cannot be empty" in response.json()["detail"]

    def test_unknown_template_is_404(self, client):
        response = client.post(
            "/optimize", json={"prompt": "write", "model_key": "mock", "template_id": "no-such-template"}
        )
        assert response.status_code == 404

    def test_provider_failure_is_502(self, client, provider):
        provider.error = ConnectionError("refused")
        response = client.post("/optimize", json={"prompt": "write", "model_key": "mock"})
        assert response.status_code == 502

    def test_missing_field_is_422(self, client):
        assert client.post("/optimize", json={"prompt": "write"}).status_code == 422

    def test_stream(self, client):
        response = client.post("/optimize", json={"prompt": "write", "model_key": "mock", "stream": True})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = parse_sse(response.text)
        tokens = [data["token"] for name, data in events if name == "token"]
        assert "".join(tokens) == "Better prompt here"
        name, chain = events[-1]
        assert name == "complete"
        assert chain["current_record"]["optimized_prompt"] == "Better prompt here"

    def test_stream_error_event(self, client):
        response = client.post("/optimize", json={"prompt": "", "model_key": "mock", "stream": True})
        events = parse_sse(response.text)
        assert len(events) == 1
        name, data = events[0]
        assert name == "error"
        assert data["status"] == 422
        assert client.get("/history").json() == []


class TestIterate:
    def test_appends_version(self, client):
        chain = optimize(client)
        response = client.post(
            "/iterate", json={"chain_id": chain["chain_id"], "iterate_input": "shorter", "model_key": "mock"}
        )
        assert response.status_code == 200
        updated = response.json()
        assert [v["version"] for v in updated["versions"]] == [1, 2]
        assert updated["current_record"]["iteration_note"] == "shorter"

    def test_unknown_chain_is_404(self, client):
        response = client.post("/iterate", json={"chain_id": "nope", "iterate_input": "x", "model_key": "mock"})
        assert response.status_code == 404

    def test_stream_unknown_chain(self, client):
        response = client.post(
            "/iterate", json={"chain_id": "nope", "iterate_input": "x", "model_key": "mock", "stream": True}
        )
        [(name, data)] = parse_sse(response.text)
        assert name == "error"
        assert data["status"] == 404
        assert "Record chain not found: nope" in data["detail"]


class TestTestPrompt:
    def test_returns_result_without_saving(self, client):
        response = client.post("/test", json={"prompt": "Translate", "test_input": "Hello", "model_key": "mock"})
        assert response.json() == {"result": "Better prompt here"}
        assert client.get("/history").json() == []

    def test_stream(self, client):
        response = client.post(
            "/test", json={"prompt": "Translate", "test_input": "Hello", "model_key": "mock", "stream": True}
        )
        assert parse_sse(response.text)[-1] == ("complete", {"result": "Better prompt here"})


class TestHistory:
    def test_search_and_limit(self, client):
        optimize(client, "write a poem")
        optimize(client, "summarize an article")
        assert len(client.get("/history", params={"limit": 1}).json()) == 1
        found = client.get("/history", params={"q": "ARTICLE"}).json()
        assert [r["original_prompt"] for r in found] == ["summarize an article"]

    def test_get_and_delete_record(self, client):
        record_id = optimize(client)["root_record"]["id"]
        assert client.get(f"/history/{record_id}").json()["id"] == record_id
        assert client.delete(f"/history/{record_id}").json() == {"deleted": record_id}
        assert client.get(f"/history/{record_id}").status_code == 404
        assert client.delete(f"/history/{record_id}").status_code == 404

    def test_lineage(self, client):
        chain = optimize(client)
        updated = client.post(
            "/iterate", json={"chain_id": chain["chain_id"], "iterate_input": "shorter", "model_key": "mock"}
        ).json()
        lineage = client.get(f"/history/{updated['current_record']['id']}/lineage").json()
        assert [r["version"] for r in lineage] == [1, 2]
        assert client.get("/history/missing/lineage").status_code == 404

    def test_clear(self, client):
        optimize(client)
        assert client.delete("/history").json() == {"status": "cleared"}
        assert client.get("/history").json() == []


class TestChains:
    def test_list_get_delete(self, client):
        chain_id = optimize(client)["chain_id"]
        assert [c["chain_id"] for c in client.get("/chains").json()] == [chain_id]
        assert client.get(f"/chains/{chain_id}").json()["chain_id"] == chain_id
        assert client.delete(f"/chains/{chain_id}").json() == {"deleted": 1}
        assert client.get(f"/chains/{chain_id}").status_code == 404
        assert client.delete(f"/chains/{chain_id}").status_code == 404


class TestModelsAndTemplates:
    def test_models_masked(self, client):
        models = client.get("/models").json()
        assert models[0]["key"] == "mock"
        assert models[0]["api_key"] == "****7890"

    def test_templates_by_type(self, client):
        ids = [t["id"] for t in client.get("/templates", params={"type": "iterate"}).json()]
        assert ids == ["iterate"]
        assert client.get("/templates/general-optimize").json()["is_builtin"] is True
        assert client.get("/templates/nope").status_code == 404


class TestCompare:
    def test_compare(self, client):
        response = client.post("/compare", json={"original": "the cat", "optimized": "the dog"})
        body = response.json()
        assert body["summary"] == {"additions": 1, "deletions": 1, "unchanged": 1}

    def test_bad_granularity(self, client):
        response = client.post("/compare", json={"original": "a", "optimized": "b", "granularity": "line"})
        assert response.status_code == 422
