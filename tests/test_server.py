"""Tests for server.py Flask endpoints — the pipeline runs fully offline."""

import time
from unittest.mock import MagicMock, patch

import pytest

import server
from agents.deployer import DeployerAgent
from agents.research import ResearchAgent
from agents.search import SearchChain
from core.cache import MemoryCacheStore
from core.errors import ConfigError, ProviderError, TransportError
from core.orchestrator import Orchestrator
from core.state import DeploymentStatus
from conftest import FailingProvider, FakeBackend, FakeLLM


@pytest.fixture
def offline_orchestrator():
    llm = FakeLLM(lambda prompt: TransportError("offline"))
    search = SearchChain(cache=MemoryCacheStore(), llm=llm, primary=FailingProvider(), alternatives=[])
    return Orchestrator(
        llm=llm,
        research=ResearchAgent(llm=llm, search=search, knowledge_base=MagicMock()),
        deployer=DeployerAgent({"fake": FakeBackend()}),
    )


@pytest.fixture
def client(offline_orchestrator):
    server.app.config["TESTING"] = True
    with server._runs_lock:
        server._runs.clear()
    server.history.clear()
    with patch.object(server, "orchestrator", offline_orchestrator):
        with server.app.test_client() as c:
            yield c


# ---------------------------------------------------------------------------
# /api/agents
# ---------------------------------------------------------------------------

class TestAgents:
    def test_lists_stages(self, client):
        resp = client.get("/api/agents")
        assert resp.status_code == 200
        names = [a["name"] for a in resp.get_json()]
        assert names == ["research", "planner", "generator", "optimizer", "deployer"]


# ---------------------------------------------------------------------------
# /api/generate
# ---------------------------------------------------------------------------

class TestGenerate:
    def test_missing_prompt(self, client):
        assert client.post("/api/generate", json={}).status_code == 400
        assert client.post("/api/generate", json={"prompt": "   "}).status_code == 400

    def test_not_json(self, client):
        resp = client.post("/api/generate", data="prompt=x", content_type="text/plain")
        assert resp.status_code == 400

    def test_invalid_platform(self, client):
        resp = client.post("/api/generate", json={"prompt": "x", "platform": "watch"})
        assert resp.status_code == 400
        assert "watch" in resp.get_json()["error"]

    @pytest.mark.parametrize("body", [
        ["todo list app"],
        {"prompt": 42},
        {"prompt": "todo list app", "features": "sharing"},
        {"prompt": "todo list app", "features": ["sharing", 3]},
        {"prompt": "todo list app", "deploy": True},
        {"prompt": "todo list app", "deploy": ["vercel"]},
    ])
    def test_malformed_fields(self, client, body):
        resp = client.post("/api/generate", json=body)
        assert resp.status_code == 400
        assert "error" in resp.get_json()
        assert server._runs == {}

    def test_full_run(self, client):
        resp = client.post("/api/generate", json={"prompt": "todo list app", "features": ["sharing"]})
        assert resp.status_code == 200
        data = resp.get_json()

        assert data["success"] is True
        assert data["run_id"].startswith("forge-")
        assert data["plan"]["name"] == "Todo List App"
        assert data["plan"]["features"] == ["sharing"]
        assert "Header.tsx" in data["code"]["frontend"]["components"]
        assert data["optimization"]["optimized_code"]["version"] == "optimized"
        assert data["report"].startswith("# Code Optimization Report")
        assert data["deployment"] is None

    def test_run_with_deploy_string(self, client):
        data = client.post("/api/generate", json={"prompt": "todo list app", "deploy": "fake"}).get_json()
        assert data["deployment"]["status"] == "ready"
        assert data["deployment"]["url"] == "https://h1.fake.app"

    def test_run_with_bad_provider_records_error(self, client):
        data = client.post("/api/generate", json={
            "prompt": "todo list app", "deploy": {"provider": "heroku", "environment": "preview"},
        }).get_json()
        assert data["success"] is True
        assert any("heroku" in e for e in data["errors"])

    def test_history(self, client):
        client.post("/api/generate", json={"prompt": "todo list app", "deploy": "fake"})
        history = client.get("/api/history").get_json()
        assert len(history) == 1
        assert history[0]["app"] == "Todo List App"
        assert history[0]["deployment"] == "https://h1.fake.app"
        assert history[0]["errors"] == []


# ---------------------------------------------------------------------------
# /api/runs/<id>
# ---------------------------------------------------------------------------

class TestRuns:
    def test_fetch_stored_run(self, client):
        run_id = client.post("/api/generate", json={"prompt": "todo list app"}).get_json()["run_id"]
        resp = client.get(f"/api/runs/{run_id}")
        assert resp.status_code == 200
        assert resp.get_json()["run_id"] == run_id

    def test_unknown_run(self, client):
        assert client.get("/api/runs/forge-000000000000").status_code == 404

    def test_expired_run(self, client):
        run_id = client.post("/api/generate", json={"prompt": "todo list app"}).get_json()["run_id"]
        with server._runs_lock:
            server._runs[run_id]["created"] = time.time() - server._RUN_TTL - 1
        assert client.get(f"/api/runs/{run_id}").status_code == 404
        assert run_id not in server._runs

    def test_store_is_capped(self, client):
        for i in range(server._MAX_RUNS + 1):
            server._store_run(MagicMock(run_id=f"forge-{i:012d}"))
        server._store_run(MagicMock(run_id="forge-last"))
        assert len(server._runs) <= server._MAX_RUNS + 1
        assert "forge-last" in server._runs
        assert "forge-000000000000" not in server._runs


# ---------------------------------------------------------------------------
# /api/deployments
# ---------------------------------------------------------------------------

class TestDeployments:
    def test_status(self, client):
        resp = client.get("/api/deployments/fake/h9")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ready"

    def test_unknown_provider(self, client):
        assert client.get("/api/deployments/heroku/x").status_code == 404

    @pytest.mark.parametrize("error, code", [
        (ConfigError("VERCEL_TOKEN not set"), 503),
        (ProviderError("gone"), 409),
        (TransportError("timeout"), 502),
    ])
    def test_error_mapping(self, client, error, code):
        server.orchestrator.deployer.check_status = MagicMock(side_effect=error)
        resp = client.get("/api/deployments/fake/x")
        assert resp.status_code == code
        assert resp.get_json()["error"] == str(error)

    def test_rollback(self, client):
        first = client.post("/api/generate", json={"prompt": "todo app", "deploy": "fake"}).get_json()
        second = client.post("/api/generate", json={"prompt": "todo app", "deploy": "fake"}).get_json()

        resp = client.post(f"/api/deployments/fake/{second['deployment']['id']}/rollback")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["url"] == first["deployment"]["url"]
        assert data["rollback_of"] == second["deployment"]["id"]

    def test_rollback_without_history(self, client):
        assert client.post("/api/deployments/fake/fake-x/rollback").status_code == 409

    def test_status_payload_shape(self, client):
        server.orchestrator.deployer.check_status = MagicMock(
            return_value=DeploymentStatus("building", None, ("queued",)))
        data = client.get("/api/deployments/fake/x").get_json()
        assert data == {"status": "building", "url": None, "logs": ["queued"]}
