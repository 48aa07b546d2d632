"""Main pipeline orchestrator — research → plan → generate → optimize → (deploy)."""

import logging
import os
import uuid

from agents.deployer import DeployerAgent, prepare_files
from agents.generator import GeneratorAgent
from agents.optimizer import OptimizerAgent
from agents.planner import PlannerAgent
from agents.research import DEFAULT_SUMMARY, ResearchAgent
from core.errors import DeploymentError, PipelineError
from core.state import DeployConfig, GenerationRequest, PipelineState, RunResult

logger = logging.getLogger(__name__)


def new_run_id():
    return f"forge-{uuid.uuid4().hex[:12]}"


class Orchestrator:
    """Runs every stage in order. Never retries a stage.

    Research, planning and code generation degrade to their fallback values; a
    failed deployment is recorded in ``errors`` and leaves ``success`` true. Each
    run owns its own PipelineState, so runs may execute concurrently.
    """

    def __init__(self, llm=None, research=None, planner=None, generator=None,
                 optimizer=None, deployer=None):
        self.research = research or ResearchAgent(llm=llm)
        self.planner = planner or PlannerAgent(llm=llm)
        self.generator = generator or GeneratorAgent(llm=llm)
        self.optimizer = optimizer or OptimizerAgent()
        self.deployer = deployer or DeployerAgent()

    def agents(self):
        """(name, description) for every stage, in execution order."""
        return [
            (self.research.name, "Web research and research summary"),
            (self.planner.name, "App plan: features, stack, structure"),
            (self.generator.name, "Frontend, backend, database and deployment code"),
            (self.optimizer.name, "Lint, coverage, rewrites and scores"),
            (self.deployer.name, "Deploy to s3, railway, netlify or vercel"),
        ]

    def run(self, request, deploy_config=None, run_id=None):
        state = PipelineState(request=request, run_id=run_id or new_run_id())
        logger.info("Run %s started: %r (%s)", state.run_id, request.prompt, request.platform)

        self._stage(state, "Research", self.research.run, self._research_fallback)
        self._stage(state, "Planning", self.planner.run, self._plan_fallback)
        self._stage(state, "Code generation", self.generator.run, self._code_fallback)
        self._stage(state, "Optimization", self.optimizer.run, None)

        if deploy_config is not None:
            self._deploy(state, deploy_config)

        state.status = "done"
        logger.info("Run %s finished with %d error(s)", state.run_id, len(state.errors))
        return RunResult(
            success=state.plan is not None and state.code is not None,
            run_id=state.run_id,
            research=state.research,
            plan=state.plan,
            code=state.code,
            optimization=state.optimization,
            deployment=state.deployment,
            errors=tuple(state.errors),
            logs=tuple(state.logs),
        )

    def run_from_prompt(self, prompt, deploy_config=None):
        """Run with the default request settings for a bare prompt."""
        request = GenerationRequest(prompt=prompt, platform="web", style="modern", audience="general")
        return self.run(request, deploy_config)

    def plan_only(self, request):
        """Research and planning only. Returns (research, plan)."""
        state = PipelineState(request=request, run_id=new_run_id())
        self._stage(state, "Research", self.research.run, self._research_fallback)
        self._stage(state, "Planning", self.planner.run, self._plan_fallback)
        return state.research, state.plan

    def _stage(self, state, label, run, fallback):
        """Run one stage; on an escaped error apply ``fallback`` and keep going."""
        try:
            run(state)
        except Exception as e:
            logger.exception("%s stage failed", label)
            if fallback is None:
                state.errors.append(f"{label} failed: {e}")
                return
            state.logs.append(f"{label}: stage failed ({e}); using fallback")
            fallback(state)

    @staticmethod
    def _research_fallback(state):
        state.research = DEFAULT_SUMMARY

    def _plan_fallback(self, state):
        state.plan = self.planner.fallback_plan(state.request)

    def _code_fallback(self, state):
        state.code = self.generator.fallback_bundle(state.plan)

    def _deploy(self, state, config):
        if not config.project_name and state.plan is not None:
            config = DeployConfig(provider=config.provider, environment=config.environment,
                                  project_name=state.plan.name, domain=config.domain)
        try:
            self.deployer.run(state, config)
        except DeploymentError as e:
            state.logs.extend(e.logs)
            state.errors.append(str(e))
        except (PipelineError, ValueError) as e:
            state.errors.append(f"Deployment failed: {e}")
        except Exception as e:
            logger.exception("Deployment stage failed")
            state.errors.append(f"Deployment failed: {e}")

    @staticmethod
    def write_files(result, output_dir, config=None):
        """Write the run's final bundle to disk. Returns the relative paths written."""
        bundle = result.optimization.optimized_code if result.optimization else result.code
        if bundle is None:
            return []
        config = config or DeployConfig(provider="local", project_name=result.plan.name if result.plan else "")

        os.makedirs(output_dir, exist_ok=True)
        root = os.path.realpath(output_dir)
        written = []
        for path, text in prepare_files(bundle, config).items():
            resolved = os.path.realpath(os.path.join(output_dir, path))
            if not resolved.startswith(root + os.sep):
                raise ValueError(f"Path escapes output directory: {path}")
            os.makedirs(os.path.dirname(resolved), exist_ok=True)
            with open(resolved, "w") as fp:
                fp.write(text)
            written.append(path)
        return written
