"""Streaming chat completions from OpenAI, adapted to ``ProviderChunk``s."""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from openai import OpenAI

from promptstudy.chat.helpers.relay import ProviderChunk


class OpenAIChatProvider:
    def __init__(self, api_key: str, client=None, **client_kwargs):
        self._client = client or OpenAI(api_key=api_key, **client_kwargs)

    def stream(self, model, messages):
        response = self._client.chat.completions.create(model=model, messages=messages, stream=True)
        return self._chunks(response)

    @staticmethod
    def _chunks(response):
        try:
            for chunk in response:
                choice = chunk.choices[0] if chunk.choices else None
                delta = ""
                finish_reason = None
                if choice is not None:
                    delta = (choice.delta.content if choice.delta else None) or ""
                    finish_reason = choice.finish_reason
                yield ProviderChunk(delta=delta, finish_reason=finish_reason, id=chunk.id)
        finally:
            response.close()


def get_chat_provider() -> OpenAIChatProvider:
    api_key = getattr(settings, "OPENAI_API_KEY", "")
    if not api_key:
        raise ImproperlyConfigured("Missing OPENAI_API_KEY")
    return OpenAIChatProvider(api_key)
