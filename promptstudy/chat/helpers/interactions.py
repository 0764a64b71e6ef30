import logging

from django.db import transaction

logger = logging.getLogger(__name__)


def next_prompt_index(user, session_id) -> int:
    """1-based position of the next prompt in the user's chat session."""
    from promptstudy.chat.models import ChatInteraction  # local import avoids circular

    return ChatInteraction.objects.filter(user=user, session_id=session_id).count() + 1


def record_interaction(user, context: dict, metrics: dict):
    """
    Store one exchange from the relay's completion metrics.

    ``context`` carries what the browser sent alongside the prompt:
    session_id, scenario, task_code, prompt, prompting_time_ms, role_used.
    """
    from promptstudy.chat.models import ChatInteraction
    from promptstudy.chat.models import Scenario

    with transaction.atomic():
        interaction = ChatInteraction.objects.create(
            user=user,
            session_id=context["session_id"],
            scenario=context.get("scenario") or Scenario.BASELINE,
            task_code=context.get("task_code") or "",
            prompt_index_no=next_prompt_index(user, context["session_id"]),
            prompt=context["prompt"],
            prompting_time_ms=context.get("prompting_time_ms"),
            role_used=context.get("role_used") or "user",
            response=metrics.get("response_text") or "",
            model=metrics.get("model") or "",
            api_call_id=metrics.get("api_call_id") or "",
            token_input=metrics.get("tokens_input"),
            token_output=metrics.get("tokens_output"),
            finish_reason=metrics.get("finish_reason") or "",
            latency_ms=metrics.get("latency_ms"),
            first_response_at=metrics.get("first_token_at"),
            raw_request=metrics.get("raw_request"),
            raw_response=metrics.get("raw_response"),
        )
    logger.info(
        "Recorded chat prompt %d for session %s (user %s)",
        interaction.prompt_index_no,
        interaction.session_id,
        user.pk,
    )
    return interaction
