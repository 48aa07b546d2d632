"""Shared test doubles. No test touches the network."""

import threading

import pytest

from agents.deployer import DeployBackend
from core.errors import TransportError
from core.state import DeploymentStatus


class FakeLLM:
    """Stands in for LLMClient.

    ``responder`` is either a list of replies consumed in order, or a callable
    ``(prompt) -> reply``. A reply that is an exception instance is raised.
    """

    def __init__(self, responder=None):
        self.responder = responder
        self.calls = []
        self._lock = threading.Lock()

    def generate(self, prompt, max_tokens=None, temperature=None, system=None):
        with self._lock:
            self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature})
            if callable(self.responder):
                reply = self.responder(prompt)
            elif self.responder:
                reply = self.responder.pop(0)
            else:
                reply = TransportError("no reply configured")
        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingProvider:
    """Search provider whose every request fails."""

    def __init__(self, name="failing", error=None):
        self.name = name
        self.error = error or TransportError(f"{name} unreachable")
        self.calls = 0

    def search(self, keywords, limit):
        self.calls += 1
        raise self.error


class StaticProvider:
    """Search provider that returns fixed results."""

    def __init__(self, results, name="static"):
        self.name = name
        self.results = list(results)
        self.calls = []

    def search(self, keywords, limit):
        self.calls.append(list(keywords))
        return self.results[:limit]


class FakeBackend(DeployBackend):
    """In-memory deploy provider: every deploy gets the next handle and URL."""

    name = "fake"
    label = "Fake"

    def __init__(self, deploy_status="ready", live_status="ready"):
        self.deploy_status = deploy_status
        self.live_status = live_status
        self.count = 0
        self.promoted = []

    def deploy(self, files, config):
        self.count += 1
        handle = f"h{self.count}"
        return handle, f"https://{handle}.fake.app", self.deploy_status, [f"uploaded {len(files)} files"]

    def check_status(self, handle):
        return DeploymentStatus(self.live_status, f"https://{handle}.fake.app",
                                (f"{handle} is {self.live_status}",))

    def promote(self, handle):
        self.promoted.append(handle)


@pytest.fixture
def failing_llm():
    return FakeLLM(lambda prompt: TransportError("text generation unavailable"))
