"""Tests for the streaming relay's event protocol and completion metrics."""
import logging

import pytest

from promptstudy.chat.helpers.relay import DoneEvent
from promptstudy.chat.helpers.relay import ErrorEvent
from promptstudy.chat.helpers.relay import ProviderChunk
from promptstudy.chat.helpers.relay import StreamingRelay
from promptstudy.chat.helpers.relay import TokenEvent
from promptstudy.chat.helpers.relay import estimate_tokens
from promptstudy.chat.tests.fakes import FakeProvider
from promptstudy.chat.tests.fakes import deltas

MESSAGES = [
    {"role": "system", "content": "You are helpful."},
    {"role": "user", "content": "What colour is the sky?"},
]


def _relay(provider, **kwargs):
    completed = []
    relay = StreamingRelay(provider, "gpt-4o-mini", MESSAGES, on_complete=completed.append, **kwargs)
    return relay, completed


class TestEstimateTokens:
    @pytest.mark.parametrize("text, expected", [("", 0), ("abcd", 1), ("abcde", 2), ("x" * 400, 100)])
    def test_four_characters_per_token(self, text, expected):
        assert estimate_tokens(text) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Completion paths
# ─────────────────────────────────────────────────────────────────────────────

class TestCompletion:
    def test_tokens_in_order_then_one_done(self):
        relay, completed = _relay(FakeProvider(deltas("The", " sky", " is", " blue")))
        events = list(relay.events())
        assert events == [
            TokenEvent("The"),
            TokenEvent(" sky"),
            TokenEvent(" is"),
            TokenEvent(" blue"),
            DoneEvent(),
        ]
        assert relay.response_text == "The sky is blue"
        assert len(completed) == 1
        assert completed[0].response_text == "The sky is blue"
        assert completed[0].finish_reason == "stop"

    def test_delta_on_finishing_chunk_is_emitted_before_done(self):
        chunks = [ProviderChunk(delta="Hello"), ProviderChunk(delta=" world", finish_reason="length")]
        relay, completed = _relay(FakeProvider(chunks))
        assert list(relay.events()) == [TokenEvent("Hello"), TokenEvent(" world"), DoneEvent()]
        assert completed[0].finish_reason == "length"
        assert completed[0].response_text == "Hello world"

    def test_chunks_after_finish_are_not_consumed(self):
        provider = FakeProvider(deltas("a") + [ProviderChunk(delta="ignored")])
        relay, _ = _relay(provider)
        assert list(relay.events()) == [TokenEvent("a"), DoneEvent()]
        assert provider.closed

    def test_stream_without_finish_reason_falls_back_to_stop(self):
        relay, completed = _relay(FakeProvider(deltas("partial", finish_reason=None)))
        assert list(relay.events()) == [TokenEvent("partial"), DoneEvent()]
        assert len(completed) == 1
        assert completed[0].finish_reason == "stop"

    def test_empty_deltas_are_skipped(self):
        chunks = [ProviderChunk(delta=""), ProviderChunk(delta="x"), ProviderChunk(delta="", finish_reason="stop")]
        relay, _ = _relay(FakeProvider(chunks))
        assert list(relay.events()) == [TokenEvent("x"), DoneEvent()]

    def test_metrics(self):
        ticks = iter([10.0, 10.25])
        relay, completed = _relay(FakeProvider(deltas("The sky", " is blue")), clock=lambda: next(ticks))
        list(relay.events())
        metrics = completed[0]
        assert metrics.model == "gpt-4o-mini"
        assert metrics.tokens_input == estimate_tokens("You are helpful.") + estimate_tokens("What colour is the sky?")
        assert metrics.tokens_output == estimate_tokens("The sky is blue")
        assert metrics.latency_ms == 250
        assert metrics.first_token_at is not None
        assert metrics.api_call_id == "chatcmpl-1"
        assert metrics.raw_request == {"model": "gpt-4o-mini", "messages": MESSAGES, "stream": True}
        choice = metrics.raw_response["choices"][0]
        assert choice["message"] == {"role": "assistant", "content": "The sky is blue"}
        assert choice["finish_reason"] == "stop"
        assert metrics.raw_response["usage"]["total_tokens"] == metrics.tokens_input + metrics.tokens_output

    def test_no_tokens_means_no_latency(self):
        relay, completed = _relay(FakeProvider(deltas()))
        assert list(relay.events()) == [DoneEvent()]
        assert completed[0].latency_ms is None
        assert completed[0].first_token_at is None
        assert completed[0].response_text == ""

    def test_callback_failure_is_logged_not_raised(self, caplog):
        def explode(metrics):
            raise ValueError("queue down")

        relay = StreamingRelay(FakeProvider(deltas("hi")), "m", MESSAGES, on_complete=explode)
        with caplog.at_level(logging.ERROR):
            events = list(relay.events())
        assert events[-1] == DoneEvent()
        assert "Completion callback failed" in caplog.text
        assert relay.metrics is not None


# ─────────────────────────────────────────────────────────────────────────────
# Failures and cancellation
# ─────────────────────────────────────────────────────────────────────────────

class TestFailures:
    def test_error_opening_stream(self, caplog):
        relay, completed = _relay(FakeProvider(open_error=ConnectionError("refused")))
        with caplog.at_level(logging.ERROR):
            events = list(relay.events())
        assert events == [ErrorEvent("refused")]
        assert completed == []

    def test_error_mid_stream(self):
        provider = FakeProvider(deltas("one", "two", "three"), fail_after=2)
        relay, completed = _relay(provider)
        events = list(relay.events())
        assert events == [TokenEvent("one"), TokenEvent("two"), ErrorEvent("upstream reset")]
        assert completed == []
        assert relay.metrics is None
        assert provider.closed


class TestCancellation:
    def test_cancel_stops_events_and_metrics(self):
        provider = FakeProvider(deltas("one", "two", "three"))
        relay, completed = _relay(provider)
        events = relay.events()
        assert next(events) == TokenEvent("one")
        relay.cancel()
        assert list(events) == []
        assert completed == []
        assert provider.closed

    def test_cancel_before_done_on_finishing_chunk(self):
        provider = FakeProvider([ProviderChunk(delta="last", finish_reason="stop")])
        relay, completed = _relay(provider)
        events = relay.events()
        assert next(events) == TokenEvent("last")
        relay.cancel()
        assert list(events) == []
        assert completed == []

    def test_client_disconnect_closes_upstream(self):
        provider = FakeProvider(deltas("one", "two"))
        relay, completed = _relay(provider)
        events = relay.events()
        next(events)
        events.close()
        assert relay.cancelled
        assert provider.closed
        assert completed == []

    def test_cancel_before_iteration_never_opens_the_stream(self):
        provider = FakeProvider(deltas("one", "two"))
        relay, completed = _relay(provider)
        relay.cancel()
        assert list(relay.events()) == []
        assert provider.calls == []
        assert completed == []
        assert relay.metrics is None
