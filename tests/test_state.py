"""Tests for core.state artifacts."""

import dataclasses
import json

import pytest

from core.state import (
    BackendCode,
    CodeBundle,
    FrontendCode,
    GenerationRequest,
    PipelineState,
    SearchResult,
    clamp_relevance,
    clamp_score,
    to_dict,
)


# ---------------------------------------------------------------------------
# GenerationRequest
# ---------------------------------------------------------------------------

class TestGenerationRequest:
    def test_defaults(self):
        req = GenerationRequest(prompt="todo list app")
        assert req.platform == "web"
        assert req.features == ()
        assert req.style == "modern"
        assert req.audience == "general"

    def test_features_coerced_to_tuple(self):
        req = GenerationRequest(prompt="x", features=["auth", "search"])
        assert req.features == ("auth", "search")

    def test_unknown_platform_rejected(self):
        with pytest.raises(ValueError, match="watch"):
            GenerationRequest(prompt="x", platform="watch")

    def test_frozen(self):
        req = GenerationRequest(prompt="x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            req.prompt = "y"


# ---------------------------------------------------------------------------
# SearchResult / clamping
# ---------------------------------------------------------------------------

class TestSearchResult:
    @pytest.mark.parametrize("raw, expected", [
        (-0.5, 0.0), (0.4, 0.4), (3.2, 1.0), (float("nan"), 0.0), ("bogus", 0.0), (None, 0.0),
    ])
    def test_relevance_clamped(self, raw, expected):
        result = SearchResult(url="https://a", title="t", content="c", relevance=raw)
        assert result.relevance == pytest.approx(expected)

    def test_pattern_fields_become_tuples(self):
        result = SearchResult(url="u", title="t", content="c", insights=["a"], code_patterns=["hook"])
        assert result.insights == ("a",)
        assert result.code_patterns == ("hook",)
        assert result.ui_patterns == ()

    def test_clamp_relevance_direct(self):
        assert clamp_relevance(1.5) == 1.0
        assert clamp_relevance("0.25") == 0.25


class TestClampScore:
    def test_bounds(self):
        assert clamp_score(-40) == 0
        assert clamp_score(140) == 100
        assert clamp_score(73) == 73


# ---------------------------------------------------------------------------
# CodeBundle
# ---------------------------------------------------------------------------

class TestCodeBundle:
    def test_source_files_covers_frontend_and_backend(self):
        bundle = CodeBundle(
            frontend=FrontendCode(components={"A.tsx": "a"}, pages={"Home.tsx": "h"}, styles={"g.css": "s"}),
            backend=BackendCode(routes={"data.ts": "r"}, models={"User.ts": "m"}, middleware={"auth.ts": "w"}),
        )
        files = list(bundle.source_files())
        assert ("components", "A.tsx", "a") in files
        assert ("pages", "Home.tsx", "h") in files
        assert ("routes", "data.ts", "r") in files
        assert ("models", "User.ts", "m") in files
        assert ("middleware", "auth.ts", "w") in files
        # styles are not lintable source
        assert all(section != "styles" for section, _, _ in files)

    def test_default_version(self):
        assert CodeBundle().version == "generated"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

class TestToDict:
    def test_none_passthrough(self):
        assert to_dict(None) is None

    def test_json_serializable(self):
        bundle = CodeBundle(frontend=FrontendCode(components={"A.tsx": "a"}))
        data = to_dict(bundle)
        assert json.loads(json.dumps(data))["frontend"]["components"] == {"A.tsx": "a"}

    def test_pipeline_state_is_mutable(self):
        state = PipelineState(request=GenerationRequest(prompt="x"))
        state.logs.append("hello")
        state.status = "planning"
        assert state.logs == ["hello"]
