"""Planner agent — turns a request (plus research) into an AppPlan."""

import json
import logging

from config.stacks import STACKS
from core.errors import ParseError
from core.fallback import first_success
from core.state import COMPLEXITIES, AppPlan, PipelineState, PlanStructure, to_dict
from utils.llm import default_client, parse_structured_payload

logger = logging.getLogger(__name__)

DEFAULT_FEATURES = ("User interface", "Data management", "Responsive design")

_ANALYSIS_PROMPT = """Analyze this app request and provide a quick assessment:

User Request: "{prompt}"
Target platform: {platform}
Requested features: {features}

Please analyze:
1. What type of app is being requested?
2. What are the main features needed?
3. What's the complexity level (simple/medium/complex)?

Respond in JSON format:
{{
  "appType": "string",
  "mainFeatures": ["feature1", "feature2"],
  "complexity": "simple|medium|complex"
}}"""

_PLAN_PROMPT = """Create a detailed app development plan based on this analysis:

User Request: "{prompt}"
Style: {style}
Audience: {audience}
Initial Analysis: {analysis}
Research Context: {research}

Include the app name and description, a prioritized feature list, the technology
stack (frontend, backend, database, deployment), the pages, components and API
endpoints, a development timeline and a complexity assessment.

Respond in this JSON format:
{{
  "name": "App Name",
  "description": "Brief description",
  "features": ["feature1", "feature2", "feature3"],
  "techStack": {{
    "frontend": "React + Tailwind CSS + TypeScript",
    "backend": "Node.js + Express + TypeScript",
    "database": "PostgreSQL + Prisma ORM",
    "deployment": "Vercel"
  }},
  "structure": {{
    "pages": ["Home", "Dashboard", "Profile"],
    "components": ["Header", "Sidebar", "Card", "Modal"],
    "api": ["/api/auth", "/api/users", "/api/data"]
  }},
  "timeline": "2-3 days for MVP",
  "complexity": "medium"
}}"""

_REFINE_PROMPT = """Refine this app plan based on the feedback:

Current Plan: {plan}
Feedback: "{feedback}"

Provide an updated plan that addresses the feedback.
Respond in the same JSON format as the current plan, using the keys
name, description, features, techStack, structure (pages, components, api),
timeline and complexity."""


def app_name(prompt):
    """First two prompt words longer than 3 characters, capitalised, plus " App"."""
    words = [w for w in prompt.lower().split() if len(w) > 3][:2]
    return " ".join(w[:1].upper() + w[1:] for w in words + ["app"])


def _strings(value):
    """Ordered, de-duplicated tuple of non-empty strings, or None if not a list."""
    if not isinstance(value, list):
        return None
    out = []
    for item in value:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if item and item not in out:
            out.append(item)
    return tuple(out)


def plan_from_payload(data, base):
    """Build an AppPlan from a decoded reply. Fields the reply omits come from ``base``."""
    if not isinstance(data, dict):
        raise ParseError("Plan reply is not a JSON object")

    stack = dict(base.tech_stack)
    raw_stack = data.get("techStack") or data.get("tech_stack")
    if isinstance(raw_stack, dict):
        stack.update({k: str(v) for k, v in raw_stack.items() if isinstance(v, str) and v})

    raw_structure = data.get("structure")
    raw_structure = raw_structure if isinstance(raw_structure, dict) else {}
    structure = PlanStructure(
        pages=_strings(raw_structure.get("pages")) or base.structure.pages,
        components=_strings(raw_structure.get("components")) or base.structure.components,
        api_routes=(_strings(raw_structure.get("api") or raw_structure.get("api_routes"))
                    or base.structure.api_routes),
    )

    complexity = data.get("complexity")
    if complexity not in COMPLEXITIES:
        complexity = base.complexity

    features = _strings(data.get("features"))
    return AppPlan(
        name=str(data.get("name") or base.name),
        description=str(data.get("description") or base.description),
        features=base.features if features is None else features,
        tech_stack=stack,
        structure=structure,
        timeline=str(data.get("timeline") or base.timeline),
        complexity=complexity,
    )


class PlannerAgent:
    """Produces an AppPlan from a request. Falls back to a deterministic plan."""

    name = "planner"

    def __init__(self, llm=None):
        self.llm = llm or default_client()

    def run(self, state: PipelineState) -> PipelineState:
        state.status = "planning"
        state.plan = self._plan(state.request, state.research, state.logs)
        return state

    def plan(self, request, research=None):
        return self._plan(request, research, [])

    def _plan(self, request, research, notes):
        def note_failure(name, reason):
            if reason is not None:
                notes.append(f"Planning: {name} failed ({reason}); using fallback plan")

        _, plan = first_success(
            [
                ("llm", lambda: self._plan_from_llm(request, research)),
                ("fallback", lambda: self.fallback_plan(request)),
            ],
            on_failure=note_failure,
        )
        return plan

    def _plan_from_llm(self, request, research):
        features = ", ".join(request.features) or "none specified"
        analysis = self.llm.generate(
            _ANALYSIS_PROMPT.format(prompt=request.prompt, platform=request.platform, features=features),
            max_tokens=1000, temperature=0.3,
        )
        research_text = json.dumps(to_dict(research), indent=2) if research is not None else "None"
        reply = self.llm.generate(
            _PLAN_PROMPT.format(prompt=request.prompt, style=request.style, audience=request.audience,
                                analysis=analysis, research=research_text),
            max_tokens=2000, temperature=0.5,
        )
        parsed = parse_structured_payload(reply, kind="object")
        if not parsed.ok:
            raise parsed.error
        plan = plan_from_payload(parsed.value, self._payload_defaults(request))
        logger.info("Planned %r (%s, %d pages)", plan.name, plan.complexity, len(plan.structure.pages))
        return plan

    @staticmethod
    def _payload_defaults(request):
        return AppPlan(
            name=app_name(request.prompt),
            description="AI-generated app",
            features=request.features,
            tech_stack=dict(STACKS[request.platform]),
            structure=PlanStructure(pages=("Home",), components=("App",), api_routes=()),
            timeline="1-2 days",
            complexity="simple",
        )

    @staticmethod
    def fallback_plan(request):
        """Deterministic plan built only from the request. No network calls."""
        return AppPlan(
            name=app_name(request.prompt),
            description="AI-generated app based on your request",
            features=request.features or DEFAULT_FEATURES,
            tech_stack=dict(STACKS[request.platform]),
            structure=PlanStructure(
                pages=("Home", "Dashboard"),
                components=("Header", "Main", "Footer"),
                api_routes=("/api/data",),
            ),
            timeline="1-2 days",
            complexity="simple",
        )

    def refine(self, plan, feedback):
        """Return a new plan addressing ``feedback``; the input plan on any failure."""
        try:
            reply = self.llm.generate(
                _REFINE_PROMPT.format(plan=json.dumps(to_dict(plan), indent=2), feedback=feedback),
                max_tokens=2000, temperature=0.5,
            )
            parsed = parse_structured_payload(reply, kind="object")
            if not parsed.ok:
                raise parsed.error
            refined = plan_from_payload(parsed.value, plan)
        except Exception as e:
            logger.warning("Plan refinement failed, keeping current plan: %s", e)
            return plan
        return refined
