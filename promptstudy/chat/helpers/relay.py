"""
Relays a provider's streamed chat completion as a sequence of stream events.

The caller sees zero or more ``TokenEvent``s followed by exactly one terminal
event: ``DoneEvent`` on success or ``ErrorEvent`` when the provider fails.
When the completion finishes, ``on_complete`` receives a ``CompletionMetrics``
exactly once, whether the provider reported a finish reason or the stream
simply ended. A cancelled relay emits nothing further and reports no metrics.

Token counts are estimates (about four characters per token), not the
provider's billing figures.
"""
import logging
import math
import time
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional, Protocol, Union

from django.utils import timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenEvent:
    text: str


@dataclass(frozen=True)
class DoneEvent:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    message: str


StreamEvent = Union[TokenEvent, DoneEvent, ErrorEvent]


@dataclass(frozen=True)
class ProviderChunk:
    delta: str = ""
    finish_reason: Optional[str] = None
    id: Optional[str] = None


class ChatProvider(Protocol):
    def stream(self, model: str, messages: list[dict]) -> Iterable[ProviderChunk]:
        ...


@dataclass
class CompletionMetrics:
    response_text: str
    tokens_input: int
    tokens_output: int
    finish_reason: str
    model: str
    latency_ms: Optional[int] = None
    first_token_at: Optional[datetime] = None
    api_call_id: Optional[str] = None
    raw_request: dict = field(default_factory=dict)
    raw_response: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / 4)


class StreamingRelay:
    def __init__(
        self,
        provider: ChatProvider,
        model: str,
        messages: list[dict],
        on_complete: Optional[Callable[[CompletionMetrics], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.model = model
        self.messages = messages
        self.on_complete = on_complete
        self._clock = clock

        self._cancelled = False
        self._completed = False
        self._parts: list[str] = []
        self._dispatched_at: Optional[float] = None
        self._first_token_clock: Optional[float] = None
        self._first_token_at: Optional[datetime] = None
        self._last_finish_reason: Optional[str] = None
        self._api_call_id: Optional[str] = None
        self.metrics: Optional[CompletionMetrics] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def response_text(self) -> str:
        return "".join(self._parts)

    def cancel(self) -> None:
        """Stop relaying. No further events are emitted and no metrics are reported."""
        self._cancelled = True

    def events(self) -> Iterator[StreamEvent]:
        if self._cancelled:
            return
        self._dispatched_at = self._clock()
        try:
            upstream = self.provider.stream(self.model, self.messages)
        except Exception as exc:
            logger.exception("Chat provider failed to open a stream for model %s", self.model)
            if not self._cancelled:
                yield ErrorEvent(str(exc) or exc.__class__.__name__)
            return

        try:
            for chunk in upstream:
                if self._cancelled:
                    return
                if chunk.id:
                    self._api_call_id = chunk.id
                if chunk.finish_reason is not None:
                    self._last_finish_reason = chunk.finish_reason
                if chunk.delta:
                    self._record_token(chunk.delta)
                    yield TokenEvent(chunk.delta)
                if chunk.finish_reason is not None:
                    if self._cancelled:
                        return
                    self._finish(chunk.finish_reason)
                    yield DoneEvent()
                    return
            if self._cancelled:
                return
            # stream ended without a finish reason
            self._finish(self._last_finish_reason or "stop")
            yield DoneEvent()
        except GeneratorExit:
            self._cancelled = True
            raise
        except Exception as exc:
            logger.exception("Chat provider stream failed mid-response for model %s", self.model)
            if not self._cancelled:
                yield ErrorEvent(str(exc) or exc.__class__.__name__)
        finally:
            close = getattr(upstream, "close", None)
            if close is not None:
                close()

    def _record_token(self, delta: str) -> None:
        if self._first_token_clock is None:
            self._first_token_clock = self._clock()
            self._first_token_at = timezone.now()
        self._parts.append(delta)

    def _finish(self, finish_reason: str) -> None:
        if self._completed:
            return
        self._completed = True
        self.metrics = self._build_metrics(finish_reason)
        if self.on_complete is None:
            return
        try:
            self.on_complete(self.metrics)
        except Exception:
            logger.exception("Completion callback failed for model %s", self.model)

    def _build_metrics(self, finish_reason: str) -> CompletionMetrics:
        text = self.response_text
        tokens_input = sum(estimate_tokens(m.get("content", "")) for m in self.messages)
        tokens_output = estimate_tokens(text)
        latency_ms = None
        if self._first_token_clock is not None:
            latency_ms = int(round((self._first_token_clock - self._dispatched_at) * 1000))
        raw_request = {"model": self.model, "messages": self.messages, "stream": True}
        raw_response = {
            "id": self._api_call_id,
            "object": "chat.completion",
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": text},
                    "finish_reason": finish_reason,
                }
            ],
            "usage": {
                "prompt_tokens": tokens_input,
                "completion_tokens": tokens_output,
                "total_tokens": tokens_input + tokens_output,
            },
        }
        return CompletionMetrics(
            response_text=text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            finish_reason=finish_reason,
            model=self.model,
            latency_ms=latency_ms,
            first_token_at=self._first_token_at,
            api_call_id=self._api_call_id,
            raw_request=raw_request,
            raw_response=raw_response,
        )
