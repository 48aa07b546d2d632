"""DeployerAgent — pushes a CodeBundle to S3, Railway, Netlify or Vercel.

Every provider implements the same DeployBackend contract; the agent only
dispatches through BACKENDS and keeps an in-process ledger of the records it
created, which status checks and rollbacks read.
"""

import io
import json
import logging
import os
import threading
import uuid
import zipfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from config.defaults import DEFAULTS
from core.errors import ConfigError, DeploymentError, PipelineError, ProviderError, TransportError
from core.state import TERMINAL_STATUSES, DeploymentRecord, DeploymentStatus, PipelineState
from utils.folder_naming import slugify

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".js": "application/javascript",
    ".jsx": "application/javascript",
    ".ts": "application/typescript",
    ".tsx": "application/typescript",
    ".json": "application/json",
    ".css": "text/css",
    ".html": "text/html",
    ".md": "text/markdown",
}

PACKAGE_DEPENDENCIES = {
    "react": "^18.2.0",
    "react-dom": "^18.2.0",
    "next": "^14.2.0",
    "express": "^4.19.0",
    "cors": "^2.8.5",
    "helmet": "^7.1.0",
    "compression": "^1.7.4",
    "express-rate-limit": "^7.2.0",
    "@prisma/client": "^5.14.0",
}

PACKAGE_DEV_DEPENDENCIES = {
    "typescript": "^5.4.0",
    "@types/react": "^18.2.0",
    "@types/express": "^4.17.21",
    "tailwindcss": "^3.4.0",
    "prisma": "^5.14.0",
}


def content_type(path):
    return CONTENT_TYPES.get(os.path.splitext(path)[1].lower(), "text/plain")


def _now():
    return datetime.now(timezone.utc).isoformat()


def _project_slug(config):
    return slugify(config.project_name or "generated app", sep="-") or "generated-app"


def _http(method, url, token, **kwargs):
    """One authenticated provider call. Returns decoded JSON (or {} for an empty body)."""
    headers = kwargs.pop("headers", {})
    headers["Authorization"] = f"Bearer {token}"
    try:
        response = requests.request(method, url, headers=headers,
                                    timeout=DEFAULTS["deploy_timeout"], **kwargs)
    except requests.RequestException as e:
        raise TransportError(f"{method} {url} failed: {e}") from e
    if response.status_code >= 400:
        raise ProviderError(f"{method} {url} returned HTTP {response.status_code}: {response.text[:200]}")
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError as e:
        raise ProviderError(f"{method} {url} returned a non-JSON body") from e
    if not isinstance(payload, dict):
        raise ProviderError(f"{method} {url} returned {type(payload).__name__}, expected a JSON object")
    return payload


def _node(data, key):
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def prepare_files(bundle, config):
    """Flatten a bundle into the path -> text map every provider uploads."""
    files = {}
    for name, text in bundle.frontend.components.items():
        files[f"src/components/{name}"] = text
    for name, text in bundle.frontend.pages.items():
        files[f"src/pages/{name}"] = text
    for name, text in bundle.frontend.styles.items():
        files[f"src/styles/{name}"] = text
    for name, text in bundle.backend.routes.items():
        files[f"api/{name}"] = text
    for name, text in bundle.backend.models.items():
        files[f"api/models/{name}"] = text
    for name, text in bundle.backend.middleware.items():
        files[f"api/middleware/{name}"] = text
    if bundle.database.schema:
        files["db/schema.prisma"] = bundle.database.schema
    for i, text in enumerate(bundle.database.migrations, start=1):
        files[f"db/migrations/{i:03d}.sql"] = text
    for i, text in enumerate(bundle.database.seeds, start=1):
        files[f"db/seeds/{i:03d}.ts"] = text
    files.update(bundle.deployment.manifests)

    files.setdefault("package.json", json.dumps({
        "name": _project_slug(config),
        "version": "1.0.0",
        "private": True,
        "scripts": {"dev": "next dev", "build": "next build", "start": "next start"},
        "dependencies": PACKAGE_DEPENDENCIES,
        "devDependencies": PACKAGE_DEV_DEPENDENCIES,
    }, indent=2))
    files.setdefault(".env.example", (
        f"NODE_ENV={config.environment}\n"
        f"NEXT_PUBLIC_APP_URL={'https://' + config.domain if config.domain else 'http://localhost:3000'}\n"
        "DATABASE_URL=\n"
    ))
    return files


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class DeployBackend(ABC):
    """Provider contract. Failures raise ConfigError, TransportError or ProviderError."""

    name = ""
    label = ""
    env_vars = ()
    env_hint = ""

    def auth_ok(self):
        return all(os.environ.get(var) for var in self.env_vars)

    def require_auth(self):
        missing = [var for var in self.env_vars if not os.environ.get(var)]
        if missing:
            raise ConfigError(f"{', '.join(missing)} not set. {self.env_hint}")

    @property
    def token(self):
        self.require_auth()
        return os.environ[self.env_vars[0]]

    @abstractmethod
    def deploy(self, files, config):
        """Upload ``files``. Returns (handle, url, status, logs)."""

    @abstractmethod
    def check_status(self, handle):
        """Return a DeploymentStatus for a provider handle."""

    @abstractmethod
    def promote(self, handle):
        """Make an earlier deployment the live one again."""


class _S3Backend(DeployBackend):
    name = "s3"
    label = "AWS S3"
    env_vars = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY")
    env_hint = "Export AWS credentials (and optionally AWS_REGION)."

    @property
    def region(self):
        return os.environ.get("AWS_REGION") or DEFAULTS["aws_region"]

    def _client(self):
        self.require_auth()
        return boto3.client("s3", region_name=self.region)

    def website_url(self, bucket):
        return f"http://{bucket}.s3-website-{self.region}.amazonaws.com"

    def deploy(self, files, config):
        s3 = self._client()
        bucket = f"{_project_slug(config)[:40]}-{uuid.uuid4().hex[:8]}"
        logs = []
        try:
            if self.region == "us-east-1":
                s3.create_bucket(Bucket=bucket)
            else:
                s3.create_bucket(Bucket=bucket,
                                 CreateBucketConfiguration={"LocationConstraint": self.region})
            logs.append(f"Created bucket {bucket}")

            for path, text in files.items():
                s3.put_object(Bucket=bucket, Key=path.lstrip("/"), Body=text.encode("utf-8"),
                              ContentType=content_type(path))
            logs.append(f"Uploaded {len(files)} files")

            s3.put_bucket_website(Bucket=bucket, WebsiteConfiguration={
                "IndexDocument": {"Suffix": "index.html"},
                "ErrorDocument": {"Key": "error.html"},
            })
            s3.put_public_access_block(Bucket=bucket, PublicAccessBlockConfiguration={
                "BlockPublicAcls": False,
                "IgnorePublicAcls": False,
                "BlockPublicPolicy": False,
                "RestrictPublicBuckets": False,
            })
            s3.put_bucket_policy(Bucket=bucket, Policy=json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Sid": "PublicReadGetObject",
                    "Effect": "Allow",
                    "Principal": "*",
                    "Action": "s3:GetObject",
                    "Resource": f"arn:aws:s3:::{bucket}/*",
                }],
            }))
            logs.append("Enabled static website hosting")
        except ClientError as e:
            raise ProviderError(f"S3 rejected the deployment: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"S3 request failed: {e}") from e

        # Static hosting is live as soon as the objects are uploaded
        return bucket, self.website_url(bucket), "ready", logs

    def check_status(self, handle):
        s3 = self._client()
        try:
            s3.head_bucket(Bucket=handle)
        except ClientError as e:
            return DeploymentStatus("error", None, (f"Bucket {handle} unavailable: {e}",))
        except BotoCoreError as e:
            raise TransportError(f"S3 request failed: {e}") from e
        return DeploymentStatus("ready", self.website_url(handle), ("S3 deployment is live",))

    def promote(self, handle):
        # Each deploy owns its bucket, so the earlier site is still being served
        status = self.check_status(handle)
        if status.status != "ready":
            raise ProviderError(f"Bucket {handle} is no longer available")


class _RailwayBackend(DeployBackend):
    name = "railway"
    label = "Railway"
    env_vars = ("RAILWAY_TOKEN",)
    env_hint = "export RAILWAY_TOKEN=<token from railway.app/account/tokens>"
    endpoint = "https://backboard.railway.app/graphql/v2"

    STATUS_MAP = {"SUCCESS": "ready", "FAILED": "error", "CRASHED": "error", "REMOVED": "error"}

    def _graphql(self, query, variables):
        payload = _http("POST", self.endpoint, self.token, json={"query": query, "variables": variables})
        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message", "unknown") if isinstance(first, dict) else str(first)
            raise ProviderError(f"Railway error: {message}")
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    def deploy(self, files, config):
        data = self._graphql(
            "mutation($name: String!) { projectCreate(input: { name: $name }) { id name } }",
            {"name": _project_slug(config)},
        )
        project_id = _node(data, "projectCreate").get("id")
        if not project_id:
            raise ProviderError("Railway did not return a project id")
        logs = [f"Created Railway project {project_id}"]

        data = self._graphql(
            "mutation($input: DeploymentCreateInput!) { deploymentCreate(input: $input) { id status url } }",
            {"input": {
                "projectId": project_id,
                "environment": config.environment,
                "files": [{"path": path, "content": text} for path, text in files.items()],
            }},
        )
        deployment = _node(data, "deploymentCreate")
        if not deployment.get("id"):
            raise ProviderError("Railway did not return a deployment id")
        url = deployment.get("url") or f"https://{deployment['id']}.up.railway.app"
        logs.append(f"Started Railway deployment {deployment['id']}")
        return deployment["id"], url, self.STATUS_MAP.get(deployment.get("status"), "building"), logs

    def check_status(self, handle):
        data = self._graphql(
            "query($id: String!) { deployment(id: $id) { status url } }",
            {"id": handle},
        )
        deployment = _node(data, "deployment")
        status = self.STATUS_MAP.get(deployment.get("status"), "building")
        return DeploymentStatus(status, deployment.get("url"), (f"Railway status: {deployment.get('status')}",))

    def promote(self, handle):
        self._graphql(
            "mutation($id: String!) { deploymentRollback(id: $id) }",
            {"id": handle},
        )


class _NetlifyBackend(DeployBackend):
    name = "netlify"
    label = "Netlify"
    env_vars = ("NETLIFY_TOKEN",)
    env_hint = "export NETLIFY_TOKEN=<personal access token from app.netlify.com/user/applications>"
    api = "https://api.netlify.com/api/v1"

    STATUS_MAP = {"ready": "ready", "error": "error", "rejected": "error"}

    @staticmethod
    def build_zip(files):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for path, text in files.items():
                archive.writestr(path, text)
        return buffer.getvalue()

    def deploy(self, files, config):
        archive = self.build_zip(files)
        site = _http("POST", f"{self.api}/sites", self.token,
                     headers={"Content-Type": "application/zip"}, data=archive)
        handle = site.get("deploy_id") or site.get("id")
        if not handle:
            raise ProviderError("Netlify did not return a deploy id")
        url = site.get("ssl_url") or site.get("url") or f"https://{site.get('name', handle)}.netlify.app"
        logs = [f"Uploaded {len(archive)} byte archive to Netlify site {site.get('id', handle)}"]
        return handle, url, self.STATUS_MAP.get(site.get("state"), "building"), logs

    def check_status(self, handle):
        deploy = _http("GET", f"{self.api}/deploys/{handle}", self.token)
        status = self.STATUS_MAP.get(deploy.get("state"), "building")
        logs = (deploy.get("error_message") or f"Netlify state: {deploy.get('state')}",)
        return DeploymentStatus(status, deploy.get("ssl_url") or deploy.get("url"), logs)

    def promote(self, handle):
        _http("POST", f"{self.api}/deploys/{handle}/restore", self.token)


class _VercelBackend(DeployBackend):
    name = "vercel"
    label = "Vercel"
    env_vars = ("VERCEL_TOKEN",)
    env_hint = "export VERCEL_TOKEN=<token from vercel.com/account/tokens>"
    api = "https://api.vercel.com"

    STATUS_MAP = {"READY": "ready", "ERROR": "error", "CANCELED": "error"}

    def deploy(self, files, config):
        body = {
            "name": _project_slug(config),
            "files": [{"file": path, "data": text} for path, text in files.items()],
            "projectSettings": {"framework": "nextjs"},
        }
        if config.environment == "production":
            body["target"] = "production"
        deployment = _http("POST", f"{self.api}/v13/deployments", self.token, json=body)
        if not deployment.get("id"):
            raise ProviderError("Vercel did not return a deployment id")
        url = f"https://{deployment['url']}" if deployment.get("url") else None
        logs = [f"Created Vercel deployment {deployment['id']}"]
        return deployment["id"], url, self.STATUS_MAP.get(deployment.get("readyState"), "building"), logs

    def check_status(self, handle):
        deployment = _http("GET", f"{self.api}/v13/deployments/{handle}", self.token)
        status = self.STATUS_MAP.get(deployment.get("readyState"), "building")
        url = f"https://{deployment['url']}" if deployment.get("url") else None
        return DeploymentStatus(status, url, (f"Vercel readyState: {deployment.get('readyState')}",))

    def promote(self, handle):
        _http("POST", f"{self.api}/v13/deployments/{handle}/promote", self.token, json={})


BACKENDS = {
    "s3": _S3Backend(),
    "railway": _RailwayBackend(),
    "netlify": _NetlifyBackend(),
    "vercel": _VercelBackend(),
}


class DeployerAgent:
    """Deploy, check status and roll back through BACKENDS."""

    name = "deployer"

    def __init__(self, backends=None):
        self.backends = backends or BACKENDS
        self._records = {}
        self._lock = threading.Lock()

    def _backend(self, provider):
        backend = self.backends.get(provider)
        if backend is None:
            valid = ", ".join(sorted(self.backends))
            raise ValueError(f"Unknown provider '{provider}'. Valid options: {valid}")
        return backend

    def run(self, state: PipelineState, config) -> PipelineState:
        state.status = "deploying"
        bundle = state.optimization.optimized_code if state.optimization else state.code
        state.deployment = self.deploy(bundle, config)
        state.logs.extend(state.deployment.logs)
        return state

    def deploy(self, bundle, config):
        """Deploy ``bundle``. Returns a DeploymentRecord or raises DeploymentError."""
        backend = self._backend(config.provider)
        logs = []
        try:
            backend.require_auth()
            files = prepare_files(bundle, config)
            logs.append(f"Prepared {len(files)} files for {backend.label}")
            handle, url, status, backend_logs = backend.deploy(files, config)
            logs.extend(backend_logs)
        except PipelineError as e:
            logs.append(f"{backend.label} deployment failed: {e}")
            logger.error("%s deployment failed: %s", backend.label, e)
            raise DeploymentError(f"{backend.label} deployment failed: {e}",
                                  provider=backend.name, logs=logs, cause=e) from e

        record = DeploymentRecord(
            id=f"{backend.name}-{uuid.uuid4().hex[:12]}",
            provider=backend.name,
            status=status,
            url=url,
            logs=tuple(logs),
            target=handle,
            created_at=_now(),
        )
        self._store(record)
        logger.info("Deployed %s to %s (%s): %s", record.id, backend.label, status, url)
        return record

    def records(self, provider=None):
        with self._lock:
            if provider is not None:
                return list(self._records.get(provider, []))
            return [r for records in self._records.values() for r in records]

    def _store(self, record):
        with self._lock:
            records = self._records.setdefault(record.provider, [])
            for i, existing in enumerate(records):
                if existing.id == record.id:
                    records[i] = record
                    return
            records.append(record)

    def _find(self, deployment_id, provider):
        with self._lock:
            return next((r for r in self._records.get(provider, []) if r.id == deployment_id), None)

    def check_status(self, deployment_id, provider):
        """Current status of a deployment. Ids unknown to this process are treated as provider handles."""
        backend = self._backend(provider)
        record = self._find(deployment_id, provider)
        if record is not None and record.status in TERMINAL_STATUSES:
            return DeploymentStatus(record.status, record.url, record.logs)

        status = backend.check_status(record.target if record else deployment_id)
        if record is not None:
            self._store(DeploymentRecord(
                id=record.id,
                provider=record.provider,
                status=status.status,
                url=status.url or record.url,
                logs=record.logs + tuple(status.logs),
                target=record.target,
                created_at=record.created_at,
                rollback_of=record.rollback_of,
            ))
        return status

    def rollback(self, deployment_id, provider):
        """Re-promote the deployment that preceded ``deployment_id``. Returns the new record."""
        backend = self._backend(provider)
        records = self.records(provider)
        if len(records) < 2:
            raise ProviderError(f"No previous {provider} deployment to roll back to")

        index = next((i for i, r in enumerate(records) if r.id == deployment_id), None)
        if index is None:
            raise ProviderError(f"Unknown {provider} deployment: {deployment_id}")

        for earlier in records[:index + 1]:
            if earlier.status not in TERMINAL_STATUSES:
                self.check_status(earlier.id, provider)
        records = self.records(provider)
        current = records[index]
        if current.status != "ready":
            raise ProviderError(f"Deployment {deployment_id} is '{current.status}', not 'ready'")

        previous = next((r for r in reversed(records[:index]) if r.status == "ready"), None)
        if previous is None:
            raise ProviderError(f"No successful {provider} deployment precedes {deployment_id}")

        backend.promote(previous.target)
        record = DeploymentRecord(
            id=f"{backend.name}-{uuid.uuid4().hex[:12]}",
            provider=backend.name,
            status="ready",
            url=previous.url,
            logs=(f"Rolled back {deployment_id} to {previous.id}",),
            target=previous.target,
            created_at=_now(),
            rollback_of=deployment_id,
        )
        self._store(record)
        logger.info("Rolled back %s to %s on %s", deployment_id, previous.id, backend.label)
        return record
