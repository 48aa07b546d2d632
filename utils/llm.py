"""Claude API client and structured-payload parsing for free-text replies."""

import json
import logging
import os
import re
import time

import anthropic

from config.defaults import DEFAULTS
from core.errors import ConfigError, ParseError, TransportError
from core.result import Err, Ok

logger = logging.getLogger(__name__)

MODEL = DEFAULTS["model"]
MAX_TOKENS = DEFAULTS["max_tokens"]

# Errors worth one more attempt; everything else fails the call immediately
_RETRYABLE = (anthropic.RateLimitError, anthropic.APIConnectionError, anthropic.APITimeoutError)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


def get_client():
    """Return an Anthropic client. Raises ConfigError if no API key is set."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise ConfigError(
            "ANTHROPIC_API_KEY environment variable is not set. "
            "Get a key at https://console.anthropic.com/ and run:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(api_key=api_key, timeout=DEFAULTS["llm_timeout"])


class LLMClient:
    """Text Generation Client: prompt in, generated text out.

    Failures surface as TransportError (network, rate limit, provider error) or
    ConfigError (no credentials). Rate-limit and connection errors get exactly one
    retry; callers never retry on their own.
    """

    def __init__(self, model=None, client=None):
        self.model = model or MODEL
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    def generate(self, prompt, max_tokens=None, temperature=None, system=None):
        max_tokens = max_tokens or MAX_TOKENS
        temperature = DEFAULTS["temperature"] if temperature is None else temperature
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        client = self.client
        for attempt in range(2):
            try:
                text = ""
                with client.messages.stream(**kwargs) as stream:
                    for chunk in stream.text_stream:
                        text += chunk
                    final = stream.get_final_message()
                if final.stop_reason == "max_tokens":
                    logger.warning("Generation hit max_tokens=%d; reply is truncated", max_tokens)
                return text
            except _RETRYABLE as e:
                if attempt == 0:
                    logger.info("Retrying text generation after %s", type(e).__name__)
                    time.sleep(DEFAULTS["llm_retry_delay"])
                    continue
                raise TransportError(f"Text generation failed: {e}") from e
            except anthropic.APIError as e:
                raise TransportError(f"Text generation failed: {e}") from e

        raise TransportError("Text generation failed")


_default_client = None


def default_client():
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client


def parse_structured_payload(text, kind="object"):
    """Locate and decode one JSON payload embedded anywhere in ``text``.

    Args:
        text: Free-text model reply.
        kind: "object" for a JSON object, "array" for a JSON array.

    Returns:
        Ok(value) when a payload of the requested kind was found, otherwise
        Err(ParseError). Never raises.
    """
    if kind not in ("object", "array"):
        return Err(ParseError(f"Unknown payload kind: {kind}"))
    if not isinstance(text, str) or not text.strip():
        return Err(ParseError("Empty response"))

    open_ch, close_ch = ("{", "}") if kind == "object" else ("[", "]")
    expected = dict if kind == "object" else list

    candidates = [m.group(1) for m in _FENCE_RE.finditer(text)]
    start, end = text.find(open_ch), text.rfind(close_ch)
    if start != -1 and end > start:
        # Widest span first: matches a reply that is "prose {payload} prose"
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(value, expected):
            return Ok(value)

    # Widest span failed (e.g. two payloads or trailing braces): decode from each opener
    decoder = json.JSONDecoder()
    pos = text.find(open_ch)
    while pos != -1:
        try:
            value, _ = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find(open_ch, pos + 1)
            continue
        if isinstance(value, expected):
            return Ok(value)
        pos = text.find(open_ch, pos + 1)

    return Err(ParseError(f"No JSON {kind} found in response"))
