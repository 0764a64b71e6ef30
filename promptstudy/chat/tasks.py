"""
Huey background tasks for chat.

Persisting an interaction runs off the streaming response so a slow database
never delays the participant's tokens.
"""
import logging

from django.contrib.auth import get_user_model
from huey.contrib.djhuey import db_task

from promptstudy.chat.helpers.interactions import record_interaction

logger = logging.getLogger(__name__)


@db_task(retries=2, retry_delay=60)
def record_interaction_task(user_id: int, context: dict, metrics: dict):
    """Create a ChatInteraction from completion metrics. Returns its pk."""
    User = get_user_model()
    try:
        user = User.objects.get(pk=user_id)
    except User.DoesNotExist:
        logger.warning("record_interaction_task: user %s not found", user_id)
        return None
    return record_interaction(user, context, metrics).pk
