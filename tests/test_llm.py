"""Tests for utils.llm — structured payload parsing and the text generation client."""

from unittest.mock import MagicMock, patch

import pytest

from core.errors import ConfigError, ParseError, TransportError
from utils.llm import LLMClient, get_client, parse_structured_payload


# ---------------------------------------------------------------------------
# parse_structured_payload
# ---------------------------------------------------------------------------

class TestParseStructuredPayload:
    def test_bare_object(self):
        result = parse_structured_payload('{"name": "Todo"}')
        assert result.ok
        assert result.value == {"name": "Todo"}

    def test_object_inside_prose(self):
        text = 'Here is the plan:\n{"name": "Todo", "pages": ["Home"]}\nLet me know!'
        result = parse_structured_payload(text)
        assert result.ok
        assert result.value["pages"] == ["Home"]

    def test_fenced_block(self):
        text = 'Sure.\n```json\n{"a": 1}\n```\nDone.'
        assert parse_structured_payload(text).value == {"a": 1}

    def test_array_kind(self):
        text = 'Keywords: ["todo", "tasks", "react"] are relevant.'
        result = parse_structured_payload(text, kind="array")
        assert result.ok
        assert result.value == ["todo", "tasks", "react"]

    def test_two_objects_falls_back_to_first_decodable(self):
        text = 'first {"a": 1} then {"b": 2}'
        result = parse_structured_payload(text)
        assert result.ok
        assert result.value == {"a": 1}

    def test_array_requested_but_only_object_present(self):
        result = parse_structured_payload('{"a": [1, 2]}', kind="array")
        # the nested list is a valid array payload
        assert result.ok
        assert result.value == [1, 2]

    def test_no_payload(self):
        result = parse_structured_payload("I could not produce a plan, sorry.")
        assert not result.ok
        assert isinstance(result.error, ParseError)

    def test_malformed_json(self):
        result = parse_structured_payload('{"name": "Todo",,}')
        assert not result.ok

    @pytest.mark.parametrize("text", ["", "   ", None, 42])
    def test_empty_or_non_string(self, text):
        assert not parse_structured_payload(text).ok

    def test_unknown_kind(self):
        assert not parse_structured_payload("{}", kind="table").ok


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class _Flaky(Exception):
    pass


def _stream_ctx(chunks, stop_reason="end_turn"):
    stream = MagicMock()
    stream.text_stream = list(chunks)
    stream.get_final_message.return_value = MagicMock(stop_reason=stop_reason)
    ctx = MagicMock()
    ctx.__enter__.return_value = stream
    ctx.__exit__.return_value = False
    return ctx


class TestGetClient:
    def test_missing_key_raises_config_error(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            get_client()

    def test_client_is_lazy(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        client = LLMClient()
        with pytest.raises(ConfigError):
            client.generate("hello")


class TestLLMClientGenerate:
    def test_streams_text(self):
        api = MagicMock()
        api.messages.stream.return_value = _stream_ctx(["Hel", "lo"])
        text = LLMClient(client=api).generate("hi", max_tokens=100, temperature=0.3)
        assert text == "Hello"
        kwargs = api.messages.stream.call_args.kwargs
        assert kwargs["max_tokens"] == 100
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    def test_system_prompt_passed(self):
        api = MagicMock()
        api.messages.stream.return_value = _stream_ctx(["ok"])
        LLMClient(client=api).generate("hi", system="be brief")
        assert api.messages.stream.call_args.kwargs["system"] == "be brief"

    def test_retries_once_then_succeeds(self):
        api = MagicMock()
        api.messages.stream.side_effect = [_Flaky("rate limited"), _stream_ctx(["ok"])]
        with patch("utils.llm._RETRYABLE", (_Flaky,)), patch("utils.llm.time.sleep") as sleep:
            assert LLMClient(client=api).generate("hi") == "ok"
        assert api.messages.stream.call_count == 2
        sleep.assert_called_once()

    def test_second_failure_raises_transport_error(self):
        api = MagicMock()
        api.messages.stream.side_effect = [_Flaky("down"), _Flaky("still down")]
        with patch("utils.llm._RETRYABLE", (_Flaky,)), patch("utils.llm.time.sleep"):
            with pytest.raises(TransportError):
                LLMClient(client=api).generate("hi")
        assert api.messages.stream.call_count == 2

    def test_truncated_reply_still_returned(self):
        api = MagicMock()
        api.messages.stream.return_value = _stream_ctx(["partial"], stop_reason="max_tokens")
        assert LLMClient(client=api).generate("hi") == "partial"
