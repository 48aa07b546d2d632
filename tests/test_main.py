"""Tests for the agentsforge CLI."""

from unittest.mock import MagicMock, patch

import pytest

import main
from agents.deployer import DeployerAgent
from agents.research import ResearchAgent
from agents.search import SearchChain
from core.cache import MemoryCacheStore
from core.errors import ProviderError
from core.orchestrator import Orchestrator
from core.state import DeploymentStatus
from conftest import FailingProvider, FakeBackend


@pytest.fixture
def offline(failing_llm):
    search = SearchChain(cache=MemoryCacheStore(), llm=failing_llm, primary=FailingProvider(), alternatives=[])
    orchestrator = Orchestrator(
        llm=failing_llm,
        research=ResearchAgent(llm=failing_llm, search=search, knowledge_base=MagicMock()),
        deployer=DeployerAgent({"fake": FakeBackend()}),
    )
    with patch("main.Orchestrator", return_value=orchestrator), patch("main.configure_logging"):
        yield orchestrator


class TestBuild:
    def test_build_prints_plan_and_scores(self, offline, capsys):
        assert main.main(["build", "--prompt", "todo list app"]) == 0
        out = capsys.readouterr().out
        assert "App:        Todo List App" in out
        assert "Scores: performance=" in out

    def test_dry_run(self, offline, capsys):
        assert main.main(["build", "--prompt", "todo list app", "--dry-run"]) == 0
        out = capsys.readouterr().out
        assert "Research insights:" in out
        assert "Generated" not in out

    def test_report(self, offline, capsys):
        main.main(["build", "--prompt", "todo list app", "--report"])
        assert "# Code Optimization Report" in capsys.readouterr().out

    def test_output_dir(self, offline, tmp_path, capsys):
        out_dir = tmp_path / "app"
        assert main.main(["build", "--prompt", "todo list app", "--output", str(out_dir)]) == 0
        assert (out_dir / "package.json").exists()
        assert f"to {out_dir}" in capsys.readouterr().out

    def test_deploy_failure_exit_code(self, offline, capsys, monkeypatch):
        monkeypatch.delenv("VERCEL_TOKEN", raising=False)
        offline.deployer = DeployerAgent()
        assert main.main(["build", "--prompt", "todo list app", "--deploy"]) == 1
        assert "[ERROR] Vercel deployment failed" in capsys.readouterr().out

    def test_unknown_platform_rejected(self, offline):
        with pytest.raises(SystemExit):
            main.main(["build", "--prompt", "x", "--platform", "watch"])


class TestDeploymentCommands:
    def test_status(self, offline, capsys):
        offline.deployer = MagicMock()
        offline.deployer.check_status.return_value = DeploymentStatus("ready", "https://x.app", ("live",))
        assert main.main(["status", "--id", "dpl_1", "--provider", "vercel"]) == 0
        out = capsys.readouterr().out
        assert "Status: ready" in out
        assert "https://x.app" in out
        offline.deployer.check_status.assert_called_once_with("dpl_1", "vercel")

    def test_rollback_error_goes_to_stderr(self, offline, capsys):
        offline.deployer = MagicMock()
        offline.deployer.rollback.side_effect = ProviderError("No previous vercel deployment to roll back to")
        assert main.main(["rollback", "--id", "vercel-1", "--provider", "vercel"]) == 1
        assert "No previous vercel deployment" in capsys.readouterr().err


class TestMisc:
    def test_list_agents(self, offline, capsys):
        assert main.main(["list-agents"]) == 0
        out = capsys.readouterr().out
        assert "research" in out
        assert "Deploy providers: netlify, railway, s3, vercel" in out

    def test_no_command(self, capsys):
        assert main.main([]) == 1
