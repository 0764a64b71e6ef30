import json
import logging

from django.conf import settings
from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import ImproperlyConfigured
from django.http import JsonResponse
from django.http import StreamingHttpResponse
from django.views import View

from promptstudy.chat.helpers.provider import get_chat_provider
from promptstudy.chat.helpers.relay import StreamingRelay
from promptstudy.chat.helpers.sse import encode_event
from promptstudy.chat.models import ChatInteraction
from promptstudy.chat.models import Scenario
from promptstudy.chat.tasks import record_interaction_task

logger = logging.getLogger(__name__)


def _validate_messages(messages):
    """Returns an error string, or None when every message is a {role, content} pair."""
    if not isinstance(messages, list) or not messages:
        return "messages must be a non-empty list"
    allowed_roles = getattr(settings, "CHAT_ALLOWED_ROLES", ("system", "user", "assistant"))
    for index, message in enumerate(messages):
        if not isinstance(message, dict):
            return f"messages[{index}] must be an object"
        if message.get("role") not in allowed_roles:
            return f"messages[{index}].role must be one of {', '.join(allowed_roles)}"
        if not isinstance(message.get("content"), str):
            return f"messages[{index}].content must be a string"
    return None


def _sse_stream(relay):
    events = relay.events()
    try:
        for event in events:
            yield encode_event(event)
    finally:
        # client went away or the stream ended; either way stop the upstream call
        relay.cancel()
        events.close()


class ChatStreamView(LoginRequiredMixin, View):
    """
    Streams an assistant reply as server-sent events and stores the exchange.

    POST body: { messages, session_id, model?, scenario?, task_code?, prompting_time_ms? }

    Returns:
        200 text/event-stream of token events then one done or error event
        422 on validation failure
        500 when no provider is configured
    """

    def post(self, request):
        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, ValueError):
            return JsonResponse({"error": "Invalid JSON"}, status=422)
        if not isinstance(data, dict):
            return JsonResponse({"error": "Invalid JSON"}, status=422)

        messages = data.get("messages")
        error = _validate_messages(messages)
        if error:
            return JsonResponse({"error": error}, status=422)

        session_id = data.get("session_id")
        if not isinstance(session_id, str) or not session_id or len(session_id) > 64:
            return JsonResponse({"error": "session_id is required"}, status=422)

        scenario = data.get("scenario") or Scenario.BASELINE
        if scenario not in Scenario.values:
            return JsonResponse({"error": f"Unknown scenario: '{scenario}'"}, status=422)

        model = data.get("model") or getattr(settings, "CHAT_DEFAULT_MODEL", "gpt-4o-mini")
        if not isinstance(model, str):
            return JsonResponse({"error": "model must be a string"}, status=422)

        prompting_time_ms = data.get("prompting_time_ms")
        if prompting_time_ms is not None and (
            isinstance(prompting_time_ms, bool) or not isinstance(prompting_time_ms, int) or prompting_time_ms < 0
        ):
            return JsonResponse({"error": "prompting_time_ms must be a non-negative integer"}, status=422)

        try:
            provider = get_chat_provider()
        except ImproperlyConfigured as exc:
            logger.error("Chat stream unavailable: %s", exc)
            return JsonResponse({"error": str(exc)}, status=500)

        prompt = next(
            (m["content"] for m in reversed(messages) if m["role"] == "user"),
            messages[-1]["content"],
        )
        context = {
            "session_id": session_id,
            "scenario": scenario,
            "task_code": str(data.get("task_code") or "")[:64],
            "prompt": prompt,
            "prompting_time_ms": prompting_time_ms,
            "role_used": "user",
        }
        user_id = request.user.pk

        def on_complete(metrics):
            record_interaction_task(user_id, context, metrics.to_dict())

        relay = StreamingRelay(provider, model, messages, on_complete=on_complete)
        response = StreamingHttpResponse(_sse_stream(relay), content_type="text/event-stream; charset=utf-8")
        response["Cache-Control"] = "no-cache, no-transform"
        response["X-Accel-Buffering"] = "no"
        return response


class ChatHistoryView(LoginRequiredMixin, View):
    """
    The current user's exchanges for one chat session, as alternating
    user/assistant messages in prompt order.
    """

    def get(self, request, session_id):
        interactions = ChatInteraction.objects.filter(user=request.user, session_id=session_id).order_by(
            "prompt_index_no"
        )
        if not interactions.exists():
            return JsonResponse({"error": "No chat history found for this session"}, status=404)

        messages = []
        for interaction in interactions:
            messages.append(
                {"id": f"user-{interaction.prompt_index_no}", "role": "user", "content": interaction.prompt}
            )
            if interaction.response:
                messages.append(
                    {
                        "id": f"assistant-{interaction.prompt_index_no}",
                        "role": "assistant",
                        "content": interaction.response,
                    }
                )
        return JsonResponse({"messages": messages})


chat_stream_view = ChatStreamView.as_view()
chat_history_view = ChatHistoryView.as_view()
