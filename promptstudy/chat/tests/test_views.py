import json
from unittest.mock import patch

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.urls import reverse

from promptstudy.chat.helpers.relay import DoneEvent
from promptstudy.chat.helpers.relay import ErrorEvent
from promptstudy.chat.helpers.relay import TokenEvent
from promptstudy.chat.helpers.sse import iter_events
from promptstudy.chat.models import ChatInteraction
from promptstudy.chat.tests.fakes import FakeProvider
from promptstudy.chat.tests.fakes import deltas
from promptstudy.tests.factories import UserFactory

PROVIDER = "promptstudy.chat.views.get_chat_provider"


def _payload(**overrides):
    payload = {
        "session_id": "session-1",
        "scenario": "time_pressure",
        "task_code": "T3",
        "prompting_time_ms": 3100,
        "messages": [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "What colour is the sky?"},
        ],
    }
    payload.update(overrides)
    return payload


def _post(client, payload):
    return client.post(reverse("chat:stream"), data=json.dumps(payload), content_type="application/json")


def _events(response):
    return list(iter_events(response.streaming_content))


# ─────────────────────────────────────────────────────────────────────────────
# ChatStreamView
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.django_db
class TestChatStreamView:
    def test_login_required(self, client):
        response = _post(client, _payload())
        assert response.status_code == 302

    def test_streams_tokens_and_records_interaction(self, logged_in_client, user):
        provider = FakeProvider(deltas("The", " sky", " is", " blue"))
        with patch(PROVIDER, return_value=provider):
            response = _post(logged_in_client, _payload())
            assert response.status_code == 200
            assert response["Content-Type"] == "text/event-stream; charset=utf-8"
            assert response["Cache-Control"] == "no-cache, no-transform"
            assert response["X-Accel-Buffering"] == "no"
            assert not response.has_header("Connection")
            events = _events(response)

        assert events == [TokenEvent("The"), TokenEvent(" sky"), TokenEvent(" is"), TokenEvent(" blue"), DoneEvent()]
        assert provider.calls[0][0] == "gpt-4o-mini"

        interaction = ChatInteraction.objects.get(user=user)
        assert interaction.session_id == "session-1"
        assert interaction.prompt == "What colour is the sky?"
        assert interaction.response == "The sky is blue"
        assert interaction.prompt_index_no == 1
        assert interaction.scenario == "time_pressure"
        assert interaction.task_code == "T3"
        assert interaction.prompting_time_ms == 3100
        assert interaction.finish_reason == "stop"
        assert interaction.model == "gpt-4o-mini"

    def test_requested_model_is_used(self, logged_in_client):
        provider = FakeProvider(deltas("ok"))
        with patch(PROVIDER, return_value=provider):
            _events(_post(logged_in_client, _payload(model="gpt-4o")))
        assert provider.calls[0][0] == "gpt-4o"
        assert ChatInteraction.objects.get().model == "gpt-4o"

    def test_second_prompt_gets_next_index(self, logged_in_client, user):
        with patch(PROVIDER, side_effect=lambda: FakeProvider(deltas("ok"))):
            _events(_post(logged_in_client, _payload()))
            _events(_post(logged_in_client, _payload()))
        assert list(ChatInteraction.objects.values_list("prompt_index_no", flat=True)) == [1, 2]

    def test_upstream_error_is_streamed_and_not_recorded(self, logged_in_client):
        provider = FakeProvider(deltas("par", "tial"), fail_after=1)
        with patch(PROVIDER, return_value=provider):
            events = _events(_post(logged_in_client, _payload()))
        assert events == [TokenEvent("par"), ErrorEvent("upstream reset")]
        assert ChatInteraction.objects.count() == 0

    def test_missing_api_key(self, logged_in_client):
        with patch(PROVIDER, side_effect=ImproperlyConfigured("Missing OPENAI_API_KEY")):
            response = _post(logged_in_client, _payload())
        assert response.status_code == 500
        assert response.json()["error"] == "Missing OPENAI_API_KEY"

    def test_unconfigured_settings_return_500(self, logged_in_client, settings):
        settings.OPENAI_API_KEY = ""
        response = _post(logged_in_client, _payload())
        assert response.status_code == 500

    @pytest.mark.parametrize(
        "overrides",
        [
            {"messages": []},
            {"messages": "hello"},
            {"messages": [{"role": "tool", "content": "x"}]},
            {"messages": [{"role": "user", "content": 3}]},
            {"session_id": ""},
            {"scenario": "panic"},
            {"model": 4},
            {"prompting_time_ms": -1},
        ],
    )
    def test_validation(self, logged_in_client, overrides):
        with patch(PROVIDER) as get_provider:
            response = _post(logged_in_client, _payload(**overrides))
        assert response.status_code == 422
        get_provider.assert_not_called()

    def test_invalid_json(self, logged_in_client):
        response = logged_in_client.post(reverse("chat:stream"), data="{", content_type="application/json")
        assert response.status_code == 422


# ─────────────────────────────────────────────────────────────────────────────
# ChatHistoryView
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.django_db
class TestChatHistoryView:
    def _interaction(self, user, index, response="Sure.", session_id="session-1"):
        return ChatInteraction.objects.create(
            user=user,
            session_id=session_id,
            prompt_index_no=index,
            prompt=f"Prompt {index}",
            response=response,
        )

    def test_returns_messages_in_prompt_order(self, logged_in_client, user):
        self._interaction(user, 2, response="")
        self._interaction(user, 1)
        response = logged_in_client.get(reverse("chat:history", kwargs={"session_id": "session-1"}))
        assert response.status_code == 200
        assert response.json()["messages"] == [
            {"id": "user-1", "role": "user", "content": "Prompt 1"},
            {"id": "assistant-1", "role": "assistant", "content": "Sure."},
            {"id": "user-2", "role": "user", "content": "Prompt 2"},
        ]

    def test_other_users_history_is_hidden(self, logged_in_client):
        self._interaction(UserFactory(), 1)
        response = logged_in_client.get(reverse("chat:history", kwargs={"session_id": "session-1"}))
        assert response.status_code == 404

    def test_login_required(self, client):
        response = client.get(reverse("chat:history", kwargs={"session_id": "session-1"}))
        assert response.status_code == 302
