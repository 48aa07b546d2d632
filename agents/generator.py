"""Generator agent — one call per bundle section, each with its own template fallback."""

import json
import logging
import re

from core.errors import ParseError
from core.fallback import first_success
from core.state import (
    BackendCode,
    CodeBundle,
    DatabaseCode,
    DeploymentCode,
    FrontendCode,
    PipelineState,
    to_dict,
)
from utils.llm import default_client, parse_structured_payload

logger = logging.getLogger(__name__)

SECTIONS = ("frontend", "backend", "database", "deployment")

_FRONTEND_PROMPT = """Generate React + TypeScript frontend code for this app:

App Plan: {plan}
Style: {style}
Audience: {audience}

Generate the main pages and every component the plan lists, plus Tailwind CSS
styles. Use functional components with hooks and typed props.

Respond in this JSON format:
{{
  "components": {{"Header.tsx": "// complete component code"}},
  "pages": {{"Home.tsx": "// complete page code"}},
  "styles": {{"globals.css": "/* global styles */"}}
}}"""

_BACKEND_PROMPT = """Generate Node.js + Express backend code for this app:

App Plan: {plan}

Generate API routes for every endpoint in the plan, the data models and the
middleware (authentication, validation, error handling). Use TypeScript,
Express and async/await.

Respond in this JSON format:
{{
  "routes": {{"data.ts": "// data API routes"}},
  "models": {{"User.ts": "// data model"}},
  "middleware": {{"validation.ts": "// input validation"}}
}}"""

_DATABASE_PROMPT = """Generate the database schema and migrations for this app:

App Plan: {plan}

Generate a Prisma schema with all required models, migrations and seed data.
Include relationships, constraints and indexes.

Respond in this JSON format:
{{
  "schema": "// complete Prisma schema",
  "migrations": ["-- migration 1"],
  "seeds": ["// seed data 1"]
}}"""

_DEPLOYMENT_PROMPT = """Generate deployment configuration for this app:

App Plan: {plan}

Generate a production Dockerfile, a docker-compose file for local development
and the hosting configuration for {deployment}.

Respond in this JSON format:
{{
  "dockerfile": "# complete Dockerfile",
  "dockerCompose": "# docker-compose.yml",
  "vercelConfig": {{"version": 2}}
}}"""

_FEEDBACK_PROMPT = """Improve this generated code based on the feedback:

Generated Code: {bundle}
Feedback: "{feedback}"

Focus on performance, code quality, security and best practices.
Respond with a JSON object with the keys "frontend", "backend", "database" and
"deployment", each in the same shape as the generated code above. Omit a key to
leave that section unchanged."""

# Manifest keys in a deployment reply -> file name written at the project root
_MANIFEST_NAMES = {
    "dockerfile": "Dockerfile",
    "dockerCompose": "docker-compose.yml",
    "docker_compose": "docker-compose.yml",
    "vercelConfig": "vercel.json",
    "vercel_config": "vercel.json",
    "netlifyConfig": "netlify.toml",
}

_COMPONENT_TEMPLATE = """import React from 'react';

interface {name}Props {{
  className?: string;
}}

export default function {name}({{ className }}: {name}Props) {{
  return (
    <section className={{className}}>
      <h2 className="text-lg font-semibold">{title}</h2>
    </section>
  );
}}
"""

_PAGE_TEMPLATE = """import React from 'react';
{imports}
export default function {name}Page() {{
  return (
    <main className="min-h-screen p-6">
{body}
      <h1 className="text-2xl font-bold">{title}</h1>
    </main>
  );
}}
"""

_ROUTE_TEMPLATE = """import {{ Router, Request, Response }} from 'express';

const router = Router();
const items: Record<string, unknown>[] = [];

router.get('{path}', async (req: Request, res: Response) => {{
  try {{
    res.json({{ items }});
  }} catch (error) {{
    res.status(500).json({{ error: 'Internal server error' }});
  }}
}});

router.post('{path}', async (req: Request, res: Response) => {{
  try {{
    const item = req.body;
    items.push(item);
    res.status(201).json(item);
  }} catch (error) {{
    res.status(500).json({{ error: 'Internal server error' }});
  }}
}});

export default router;
"""

_ERROR_MIDDLEWARE = """import { Request, Response, NextFunction } from 'express';

export function errorHandler(err: Error, req: Request, res: Response, next: NextFunction) {
  res.status(500).json({ error: err.message });
}
"""

_GLOBAL_STYLES = """@tailwind base;
@tailwind components;
@tailwind utilities;
"""

_SCHEMA_TEMPLATE = """datasource db {{
  provider = "{provider}"
  url      = env("DATABASE_URL")
}}

generator client {{
  provider = "prisma-client-js"
}}

model Item {{
  id        Int      @id @default(autoincrement())
  name      String
  createdAt DateTime @default(now())
}}
"""

_DOCKERFILE = """FROM node:20-alpine
WORKDIR /app
COPY package*.json ./
RUN npm ci --omit=dev
COPY . .
RUN npm run build
EXPOSE 3000
CMD ["npm", "start"]
"""


def _identifier(name):
    """'user profile' -> 'UserProfile'; anything unusable -> 'Component'."""
    parts = re.findall(r"[A-Za-z0-9]+", re.sub(r"\.[jt]sx?$", "", name))
    ident = "".join(p[:1].upper() + p[1:] for p in parts)
    if not ident or ident[0].isdigit():
        ident = "Component" + ident
    return ident


def route_file_name(path):
    """'/api/users/profile' -> 'users-profile.ts'; '/api' -> 'index.ts'."""
    stem = re.sub(r"^/?api/?", "", path.strip())
    stem = "-".join(p for p in re.split(r"[^A-Za-z0-9_]+", stem) if p)
    return f"{stem or 'index'}.ts"


def _text_map(value):
    """Keep only name -> text entries of a decoded reply mapping."""
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, str) and v.strip()}


def _text_list(value):
    if not isinstance(value, list):
        return ()
    return tuple(v for v in value if isinstance(v, str) and v.strip())


# ---------------------------------------------------------------------------
# Section parsers: decoded reply + base section -> new section, or ParseError
# ---------------------------------------------------------------------------

def frontend_from_payload(data, base):
    maps = {k: _text_map(data.get(k)) for k in ("components", "pages", "styles")}
    if not any(maps.values()):
        raise ParseError("Frontend reply has no components, pages or styles")
    return FrontendCode(
        components=maps["components"] or dict(base.components),
        pages=maps["pages"] or dict(base.pages),
        styles=maps["styles"] or dict(base.styles),
    )


def backend_from_payload(data, base):
    maps = {k: _text_map(data.get(k)) for k in ("routes", "models", "middleware")}
    if not any(maps.values()):
        raise ParseError("Backend reply has no routes, models or middleware")
    return BackendCode(
        routes=maps["routes"] or dict(base.routes),
        models=maps["models"] or dict(base.models),
        middleware=maps["middleware"] or dict(base.middleware),
    )


def database_from_payload(data, base):
    schema = data.get("schema")
    if not isinstance(schema, str) or not schema.strip():
        raise ParseError("Database reply has no schema")
    return DatabaseCode(
        schema=schema,
        migrations=_text_list(data.get("migrations")) or base.migrations,
        seeds=_text_list(data.get("seeds")) or base.seeds,
    )


def deployment_from_payload(data, base):
    source = data.get("manifests") if isinstance(data.get("manifests"), dict) else data
    manifests = {}
    for key, value in source.items():
        if isinstance(value, dict):
            if not value:
                continue
            value = json.dumps(value, indent=2)
        if not isinstance(value, str) or not value.strip():
            continue
        manifests[_MANIFEST_NAMES.get(key, key)] = value
    if not manifests:
        raise ParseError("Deployment reply has no manifests")
    return DeploymentCode(manifests={**base.manifests, **manifests})


_PARSERS = {
    "frontend": frontend_from_payload,
    "backend": backend_from_payload,
    "database": database_from_payload,
    "deployment": deployment_from_payload,
}

_PROMPTS = {
    "frontend": _FRONTEND_PROMPT,
    "backend": _BACKEND_PROMPT,
    "database": _DATABASE_PROMPT,
    "deployment": _DEPLOYMENT_PROMPT,
}


class GeneratorAgent:
    """Generates a CodeBundle from an AppPlan."""

    name = "generator"

    def __init__(self, llm=None):
        self.llm = llm or default_client()

    def run(self, state: PipelineState) -> PipelineState:
        state.status = "generating"
        state.code = self._generate(state.plan, state.request, state.logs)
        return state

    def generate(self, plan, request=None):
        return self._generate(plan, request, [])

    def _generate(self, plan, request, notes):
        fallback = self.fallback_bundle(plan)
        sections = {}
        for section in SECTIONS:
            base = getattr(fallback, section)

            def note_failure(name, reason, section=section):
                if reason is not None:
                    notes.append(f"Code generation: {section} section failed ({reason}); using template")

            _, sections[section] = first_success(
                [
                    ("llm", lambda section=section, base=base: self._section_from_llm(section, plan, request, base)),
                    ("template", lambda base=base: base),
                ],
                on_failure=note_failure,
            )
        return CodeBundle(**sections)

    def _section_from_llm(self, section, plan, request, base):
        prompt = _PROMPTS[section].format(
            plan=json.dumps(to_dict(plan), indent=2),
            style=getattr(request, "style", "modern"),
            audience=getattr(request, "audience", "general"),
            deployment=plan.tech_stack.get("deployment", "Vercel"),
        )
        reply = self.llm.generate(prompt, temperature=0.3)
        parsed = parse_structured_payload(reply, kind="object")
        if not parsed.ok:
            raise parsed.error
        value = _PARSERS[section](parsed.value, base)
        logger.debug("Generated %s section", section)
        return value

    @staticmethod
    def fallback_bundle(plan):
        """Template bundle derived from the plan alone. No network calls."""
        components = {}
        for name in plan.structure.components or ("App",):
            ident = _identifier(name)
            components[f"{ident}.tsx"] = _COMPONENT_TEMPLATE.format(name=ident, title=name)

        # Pages render the plan's first and last component when present
        layout = [_identifier(c) for c in plan.structure.components[:1] + plan.structure.components[-1:]]
        layout = list(dict.fromkeys(layout))
        imports = "".join(f"import {c} from '../components/{c}';\n" for c in layout)
        body = "\n".join(f"      <{c} />" for c in layout)
        pages = {}
        for name in plan.structure.pages or ("Home",):
            ident = _identifier(name)
            pages[f"{ident}.tsx"] = _PAGE_TEMPLATE.format(name=ident, title=name, imports=imports, body=body)

        routes = {route_file_name(path): _ROUTE_TEMPLATE.format(path=path)
                  for path in plan.structure.api_routes}

        database = plan.tech_stack.get("database", "")
        provider = "sqlite" if "sqlite" in database.lower() else "postgresql"

        return CodeBundle(
            frontend=FrontendCode(components=components, pages=pages, styles={"globals.css": _GLOBAL_STYLES}),
            backend=BackendCode(routes=routes, models={}, middleware={"errorHandler.ts": _ERROR_MIDDLEWARE}),
            database=DatabaseCode(schema=_SCHEMA_TEMPLATE.format(provider=provider)),
            deployment=DeploymentCode(manifests={"Dockerfile": _DOCKERFILE}),
            version="template",
        )

    def optimize_with_feedback(self, bundle, feedback):
        """Return a revised bundle addressing ``feedback``; the input bundle on any failure."""
        try:
            reply = self.llm.generate(
                _FEEDBACK_PROMPT.format(bundle=json.dumps(to_dict(bundle), indent=2), feedback=feedback),
                temperature=0.3,
            )
            parsed = parse_structured_payload(reply, kind="object")
            if not parsed.ok:
                raise parsed.error
            sections = {}
            for section in SECTIONS:
                current = getattr(bundle, section)
                data = parsed.value.get(section)
                sections[section] = _PARSERS[section](data, current) if isinstance(data, dict) else current
            if all(sections[s] is getattr(bundle, s) for s in SECTIONS):
                raise ParseError("Feedback reply changed no section")
        except Exception as e:
            logger.warning("Feedback optimization failed, keeping current bundle: %s", e)
            return bundle
        return CodeBundle(**sections, version="refined")
