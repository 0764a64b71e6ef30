from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import CASCADE
from django.db.models import CharField
from django.db.models import DateTimeField
from django.db.models import JSONField
from django.db.models import Model
from django.db.models import PositiveIntegerField
from django.db.models import TextChoices
from django.db.models import TextField
from django.utils import timezone

User = get_user_model()


class Scenario(TextChoices):
    BASELINE = "baseline", "Baseline"
    DUAL_TASK = "dual_task", "Dual task"
    UNDER_STRESS = "under_stress", "Under stress"
    TIME_PRESSURE = "time_pressure", "Time pressure"
    COGNITIVE_LOAD = "cognitive_load", "Cognitive load"


class ChatInteraction(Model):
    """One prompt/response exchange, with the completion metrics of the streamed reply."""

    user = models.ForeignKey(User, on_delete=CASCADE, related_name="chat_interactions")
    session_id = CharField(max_length=64, db_index=True)
    scenario = CharField(max_length=20, choices=Scenario.choices, default=Scenario.BASELINE)
    task_code = CharField(max_length=64, blank=True, default="")
    prompt_index_no = PositiveIntegerField()
    prompt = TextField()
    response = TextField(blank=True, default="")
    prompting_time_ms = PositiveIntegerField(null=True, blank=True)
    role_used = CharField(max_length=16, default="user")
    model = CharField(max_length=64, blank=True, default="")
    api_call_id = CharField(max_length=128, blank=True, default="")
    token_input = PositiveIntegerField(null=True, blank=True)
    token_output = PositiveIntegerField(null=True, blank=True)
    finish_reason = CharField(max_length=32, blank=True, default="")
    latency_ms = PositiveIntegerField(null=True, blank=True)
    first_response_at = DateTimeField(null=True, blank=True)
    raw_request = JSONField(null=True, blank=True)
    raw_response = JSONField(null=True, blank=True)
    created_at = DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["user", "session_id", "prompt_index_no"]
        indexes = [
            models.Index(fields=["user", "session_id"], name="chat_user_session_idx"),
        ]

    def __str__(self) -> str:
        return f"Prompt {self.prompt_index_no} – {self.session_id}"
