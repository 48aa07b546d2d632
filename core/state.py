"""Pipeline artifacts shared across all stages.

Every stage output is a frozen dataclass. Sequences are tuples; mappings are plain
dicts that no stage mutates after construction (rewrites build new dicts).
PipelineState is the one mutable object: it belongs to a single run.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

from config.stacks import PLATFORMS

COMPLEXITIES = ("simple", "medium", "complex")
TERMINAL_STATUSES = ("ready", "error")


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    platform: str = "web"               # web|mobile|desktop|ar
    features: tuple[str, ...] = ()
    style: str = "modern"
    audience: str = "general"

    def __post_init__(self):
        if self.platform not in PLATFORMS:
            raise ValueError(
                f"Unknown platform '{self.platform}'. Valid options: {', '.join(PLATFORMS)}"
            )
        object.__setattr__(self, "features", tuple(self.features))


@dataclass(frozen=True)
class SearchResult:
    url: str
    title: str
    content: str
    relevance: float = 0.0              # clamped to [0, 1]
    insights: tuple[str, ...] = ()
    code_patterns: tuple[str, ...] = ()
    ui_patterns: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "relevance", clamp_relevance(self.relevance))
        for name in ("insights", "code_patterns", "ui_patterns"):
            object.__setattr__(self, name, tuple(getattr(self, name)))


@dataclass(frozen=True)
class ResearchSummary:
    insights: tuple[str, ...] = ()
    recommended_stack: tuple[str, ...] = ()
    design_patterns: tuple[str, ...] = ()
    code_examples: tuple[str, ...] = ()
    best_practices: tuple[str, ...] = ()
    potential_issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class PlanStructure:
    pages: tuple[str, ...] = ()
    components: tuple[str, ...] = ()
    api_routes: tuple[str, ...] = ()


@dataclass(frozen=True)
class AppPlan:
    name: str
    description: str
    features: tuple[str, ...]
    tech_stack: dict                    # layer -> technology
    structure: PlanStructure
    timeline: str
    complexity: str                     # simple|medium|complex


@dataclass(frozen=True)
class FrontendCode:
    components: dict = field(default_factory=dict)
    pages: dict = field(default_factory=dict)
    styles: dict = field(default_factory=dict)


@dataclass(frozen=True)
class BackendCode:
    routes: dict = field(default_factory=dict)
    models: dict = field(default_factory=dict)
    middleware: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DatabaseCode:
    schema: str = ""
    migrations: tuple[str, ...] = ()
    seeds: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeploymentCode:
    manifests: dict = field(default_factory=dict)   # file name -> text


@dataclass(frozen=True)
class CodeBundle:
    frontend: FrontendCode = field(default_factory=FrontendCode)
    backend: BackendCode = field(default_factory=BackendCode)
    database: DatabaseCode = field(default_factory=DatabaseCode)
    deployment: DeploymentCode = field(default_factory=DeploymentCode)
    version: str = "generated"          # stage that produced this bundle

    def source_files(self):
        """Yield (section, name, text) for every lintable source text."""
        for section in ("components", "pages"):
            for name, text in getattr(self.frontend, section).items():
                yield section, name, text
        for section in ("routes", "models", "middleware"):
            for name, text in getattr(self.backend, section).items():
                yield section, name, text


@dataclass(frozen=True)
class LintFinding:
    file: str
    line: int
    column: int
    message: str
    severity: str                       # error|warning|info


@dataclass(frozen=True)
class OptimizationResult:
    success: bool
    optimized_code: CodeBundle
    improvements: tuple[str, ...] = ()
    issues: tuple[str, ...] = ()
    performance_score: int = 0
    security_score: int = 0
    maintainability_score: int = 0
    lint: tuple[LintFinding, ...] = ()
    coverage: dict = field(default_factory=dict)    # file name -> estimated %


@dataclass(frozen=True)
class DeployConfig:
    provider: str                       # s3|railway|netlify|vercel
    environment: str = "production"
    project_name: str = ""
    domain: str | None = None


@dataclass(frozen=True)
class DeploymentRecord:
    id: str
    provider: str
    status: str                         # building|ready|error
    url: str | None = None
    logs: tuple[str, ...] = ()
    target: str = ""                    # provider-side handle (bucket, deployment id, site id)
    created_at: str = ""
    rollback_of: str | None = None


@dataclass(frozen=True)
class DeploymentStatus:
    status: str
    url: str | None = None
    logs: tuple[str, ...] = ()


@dataclass
class PipelineState:
    request: GenerationRequest
    run_id: str = ""
    research: ResearchSummary | None = None
    plan: AppPlan | None = None
    code: CodeBundle | None = None
    optimization: OptimizationResult | None = None
    deployment: DeploymentRecord | None = None
    status: str = "researching"         # researching|planning|generating|optimizing|deploying|done
    errors: list[str] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RunResult:
    success: bool
    run_id: str
    research: ResearchSummary | None
    plan: AppPlan | None
    code: CodeBundle | None
    optimization: OptimizationResult | None
    deployment: DeploymentRecord | None
    errors: tuple[str, ...] = ()
    logs: tuple[str, ...] = ()


def clamp_relevance(value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, value))


def clamp_score(value):
    return max(0, min(100, int(value)))


def to_dict(artifact):
    """Plain dict for any artifact; tuples stay tuples and serialize as JSON arrays."""
    if artifact is None:
        return None
    return dataclasses.asdict(artifact)
