#!/usr/bin/env python3
"""AgentsForge - prompt-to-deployed-app pipeline.

Usage:
    python main.py build --prompt "todo list app"                         # research → optimize
    python main.py build --prompt "..." --platform mobile --feature auth  # request options
    python main.py build --prompt "..." --deploy                          # deploy to the platform's provider
    python main.py build --prompt "..." --deploy netlify --output out/    # pick provider, write files
    python main.py build --prompt "..." --dry-run                         # research + plan only
    python main.py status --id vercel-1a2b3c4d5e6f --provider vercel
    python main.py rollback --id vercel-1a2b3c4d5e6f --provider vercel
    python main.py list-agents
"""

import argparse
import sys

from agents.deployer import BACKENDS
from config.stacks import PLATFORM_TO_PROVIDER, PLATFORMS
from core.errors import PipelineError
from core.orchestrator import Orchestrator
from core.state import DeployConfig, GenerationRequest
from utils.folder_naming import get_output_dir
from utils.log import configure_logging

_AUTO = "auto"


def _print_plan(plan):
    print(f"App:        {plan.name}")
    print(f"Complexity: {plan.complexity}  Timeline: {plan.timeline}")
    print(f"Features:   {', '.join(plan.features)}")
    for layer, tech in plan.tech_stack.items():
        print(f"  {layer:10s} {tech}")
    print(f"Pages:      {', '.join(plan.structure.pages)}")
    print(f"Components: {', '.join(plan.structure.components)}")
    print(f"API:        {', '.join(plan.structure.api_routes) or '-'}")


def cmd_build(args):
    """Run the full pipeline."""
    request = GenerationRequest(
        prompt=args.prompt,
        platform=args.platform,
        features=args.feature or (),
        style=args.style,
        audience=args.audience,
    )
    orchestrator = Orchestrator()

    if args.dry_run:
        research, plan = orchestrator.plan_only(request)
        print("Research insights:")
        for insight in research.insights:
            print(f"  - {insight}")
        print()
        _print_plan(plan)
        return 0

    deploy_config = None
    if args.deploy:
        provider = PLATFORM_TO_PROVIDER[args.platform] if args.deploy == _AUTO else args.deploy
        deploy_config = DeployConfig(provider=provider, environment=args.environment)

    result = orchestrator.run(request, deploy_config)

    print(f"Run:    {result.run_id}")
    _print_plan(result.plan)
    code = result.code
    print(f"\nGenerated {len(code.frontend.components)} component(s), {len(code.frontend.pages)} page(s), "
          f"{len(code.backend.routes)} route(s)")

    opt = result.optimization
    if opt is not None:
        print(f"Scores: performance={opt.performance_score} security={opt.security_score} "
              f"maintainability={opt.maintainability_score}")
        if args.report:
            print()
            print(orchestrator.optimizer.report(opt))

    output_dir = args.output or (get_output_dir(args.platform, args.prompt) if args.write else None)
    if output_dir:
        written = orchestrator.write_files(result, output_dir)
        print(f"\nWrote {len(written)} file(s) to {output_dir}")

    if result.deployment is not None:
        print(f"\nDeployed: {result.deployment.id} ({result.deployment.status}) {result.deployment.url or ''}")

    if args.verbose and result.logs:
        print("\nLog:")
        for line in result.logs:
            print(f"  {line}")

    if result.errors:
        print("\nErrors:")
        for error in result.errors:
            print(f"  [ERROR] {error}")
        return 1
    return 0


def cmd_status(args):
    status = Orchestrator().deployer.check_status(args.id, args.provider)
    print(f"Status: {status.status}")
    if status.url:
        print(f"URL:    {status.url}")
    for line in status.logs:
        print(f"  {line}")
    return 0


def cmd_rollback(args):
    record = Orchestrator().deployer.rollback(args.id, args.provider)
    print(f"Rolled back to {record.url} (new deployment {record.id})")
    return 0


def cmd_list_agents(args):
    print("Pipeline agents:")
    for name, desc in Orchestrator().agents():
        print(f"  {name:10s} - {desc}")
    print(f"\nDeploy providers: {', '.join(sorted(BACKENDS))}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="agentsforge",
        description="Turn a prompt into a researched, planned, generated and deployed app",
    )
    subparsers = parser.add_subparsers(dest="command")

    build_parser = subparsers.add_parser("build", help="Run the pipeline")
    build_parser.add_argument("--prompt", required=True, help="Natural language request")
    build_parser.add_argument("--platform", choices=PLATFORMS, default="web",
                              help="Target platform (default: web)")
    build_parser.add_argument("--feature", action="append",
                              help="Required feature (repeatable)")
    build_parser.add_argument("--style", default="modern", help="Visual style (default: modern)")
    build_parser.add_argument("--audience", default="general", help="Target audience (default: general)")
    build_parser.add_argument("--deploy", nargs="?", const=_AUTO, choices=[_AUTO] + sorted(BACKENDS),
                              help="Deploy after optimizing; bare flag uses the platform's provider")
    build_parser.add_argument("--environment", default="production",
                              help="Deploy environment (default: production)")
    build_parser.add_argument("--output", help="Write the final files to this directory")
    build_parser.add_argument("--write", action="store_true",
                              help="Write the final files to generated/<platform>/<name>")
    build_parser.add_argument("--report", action="store_true", help="Print the optimization report")
    build_parser.add_argument("--dry-run", action="store_true", help="Research and plan only")
    build_parser.add_argument("--verbose", action="store_true", help="Debug logging and run log")

    for name, help_text in (("status", "Check a deployment's status"),
                            ("rollback", "Roll back to the previous deployment")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--id", required=True, help="Deployment id")
        sub.add_argument("--provider", required=True, choices=sorted(BACKENDS))
        sub.add_argument("--verbose", action="store_true")

    list_parser = subparsers.add_parser("list-agents", help="List pipeline agents")
    list_parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    configure_logging(args.verbose)
    commands = {
        "build": cmd_build,
        "status": cmd_status,
        "rollback": cmd_rollback,
        "list-agents": cmd_list_agents,
    }
    try:
        return commands[args.command](args)
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
