#!/usr/bin/env python3
"""AgentsForge - HTTP API for the app generation pipeline."""

import os
import threading
import time

from flask import Flask, jsonify, request

from config.stacks import PLATFORMS
from core.errors import ConfigError, PipelineError, ProviderError
from core.orchestrator import Orchestrator
from core.state import DeployConfig, GenerationRequest, to_dict
from utils.log import configure_logging

app = Flask(__name__)
orchestrator = Orchestrator()
history = []

# Finished runs keyed by run_id: {id: {"result": RunResult, "created": timestamp}}
_runs = {}
_runs_lock = threading.Lock()
_MAX_RUNS = 50
_RUN_TTL = 3600


def _cleanup_runs():
    """Remove expired runs. Called under _runs_lock."""
    now = time.time()
    expired = [rid for rid, run in _runs.items() if now - run["created"] > _RUN_TTL]
    for rid in expired:
        del _runs[rid]
    if len(_runs) > _MAX_RUNS:
        by_age = sorted(_runs.items(), key=lambda x: x[1]["created"])
        for rid, _ in by_age[:len(_runs) - _MAX_RUNS]:
            del _runs[rid]


def _store_run(result):
    with _runs_lock:
        _cleanup_runs()
        _runs[result.run_id] = {"result": result, "created": time.time()}


def _get_run(run_id):
    """Get a run result, or None if not found/expired."""
    with _runs_lock:
        run = _runs.get(run_id)
    if not run:
        return None
    if time.time() - run["created"] > _RUN_TTL:
        with _runs_lock:
            _runs.pop(run_id, None)
        return None
    return run["result"]


def _result_to_dict(result):
    """Serialize a RunResult to a JSON-safe dict."""
    data = to_dict(result)
    if result.optimization is not None:
        data["report"] = orchestrator.optimizer.report(result.optimization)
    return data


def _summary(result, prompt):
    return {
        "run_id": result.run_id,
        "prompt": prompt,
        "app": result.plan.name if result.plan else None,
        "success": result.success,
        "deployment": result.deployment.url if result.deployment else None,
        "errors": list(result.errors),
    }


@app.route("/api/agents")
def api_agents():
    return jsonify([{"name": name, "description": desc} for name, desc in orchestrator.agents()])


@app.route("/api/generate", methods=["POST"])
def api_generate():
    """Run the whole pipeline synchronously and return the RunResult."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    prompt = data.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return jsonify({"error": "Missing prompt"}), 400

    platform = data.get("platform", "web")
    if platform not in PLATFORMS:
        return jsonify({"error": f"Unknown platform '{platform}'. Valid options: {', '.join(PLATFORMS)}"}), 400

    features = data.get("features") or []
    if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
        return jsonify({"error": "features must be a list of strings"}), 400

    gen_request = GenerationRequest(
        prompt=prompt.strip(),
        platform=platform,
        features=tuple(f.strip() for f in features if f.strip()),
        style=data.get("style", "modern"),
        audience=data.get("audience", "general"),
    )

    deploy_config = None
    deploy = data.get("deploy")
    if deploy:
        if isinstance(deploy, str):
            deploy = {"provider": deploy}
        if not isinstance(deploy, dict):
            return jsonify({"error": "deploy must be a provider name or an object"}), 400
        deploy_config = DeployConfig(
            provider=deploy.get("provider", ""),
            environment=deploy.get("environment", "production"),
            project_name=deploy.get("project_name", ""),
            domain=deploy.get("domain"),
        )

    result = orchestrator.run(gen_request, deploy_config)
    _store_run(result)
    history.append(_summary(result, gen_request.prompt))
    return jsonify(_result_to_dict(result))


@app.route("/api/runs/<run_id>")
def api_run(run_id):
    result = _get_run(run_id)
    if not result:
        return jsonify({"error": "Run not found"}), 404
    return jsonify(_result_to_dict(result))


def _deployment_error(e):
    if isinstance(e, ValueError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConfigError):
        return jsonify({"error": str(e)}), 503
    if isinstance(e, ProviderError):
        return jsonify({"error": str(e)}), 409
    return jsonify({"error": str(e)}), 502


@app.route("/api/deployments/<provider>/<deployment_id>")
def api_deployment_status(provider, deployment_id):
    try:
        status = orchestrator.deployer.check_status(deployment_id, provider)
    except (PipelineError, ValueError) as e:
        return _deployment_error(e)
    return jsonify(to_dict(status))


@app.route("/api/deployments/<provider>/<deployment_id>/rollback", methods=["POST"])
def api_rollback(provider, deployment_id):
    try:
        record = orchestrator.deployer.rollback(deployment_id, provider)
    except (PipelineError, ValueError) as e:
        return _deployment_error(e)
    return jsonify(to_dict(record))


@app.route("/api/history")
def api_history():
    return jsonify(history)


if __name__ == "__main__":
    configure_logging(os.environ.get("AGENTSFORGE_VERBOSE") == "1")
    port = int(os.environ.get("PORT", 5001))
    print(f"AgentsForge running at http://localhost:{port}")
    app.run(debug=False, port=port)
