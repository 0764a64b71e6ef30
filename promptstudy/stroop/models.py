from uuid import uuid4

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import CASCADE
from django.db.models import BooleanField
from django.db.models import CharField
from django.db.models import DateTimeField
from django.db.models import JSONField
from django.db.models import Model
from django.db.models import PositiveIntegerField
from django.db.models import UUIDField
from django.utils import timezone

from promptstudy.stroop.helpers.stimuli import Condition
from promptstudy.stroop.helpers.stimuli import Instruction

User = get_user_model()


class StroopRun(Model):
    """One participant's Stroop session. Its id is the session id the engine reports."""

    id = UUIDField(primary_key=True, default=uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=CASCADE, related_name="stroop_runs")
    started_at = DateTimeField(default=timezone.now)
    ended_at = DateTimeField(null=True, blank=True)
    total_trials = PositiveIntegerField(default=0)
    iti_ms = PositiveIntegerField()
    trial_timer_ms = PositiveIntegerField()
    instruction_switch_period = PositiveIntegerField()
    random_seed = CharField(max_length=64)
    summary_metrics = JSONField(default=dict)

    class Meta:
        indexes = [
            models.Index(fields=["user", "started_at"], name="stroop_run_user_started_idx"),
        ]

    def __str__(self) -> str:
        return f"Stroop run {self.id} – {self.user}"

    @property
    def is_finished(self) -> bool:
        return self.ended_at is not None


class StroopTrialRecord(Model):
    run = models.ForeignKey(StroopRun, on_delete=CASCADE, related_name="trials")
    trial_number = PositiveIntegerField()
    instruction = CharField(max_length=10, choices=Instruction.choices)
    word = CharField(max_length=10)
    ink_color = CharField(max_length=10)
    condition = CharField(max_length=12, choices=Condition.choices)
    iti_ms = PositiveIntegerField()
    reaction_time_ms = PositiveIntegerField(null=True, blank=True)
    correctness = BooleanField(null=True, blank=True)
    user_answer = CharField(max_length=20, null=True, blank=True)
    created_at = DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["run", "trial_number"]
        constraints = [
            models.UniqueConstraint(fields=["run", "trial_number"], name="unique_trial_number_per_run"),
        ]

    def __str__(self) -> str:
        return f"Trial {self.trial_number} – {self.run_id}"

    def as_trial_dict(self) -> dict:
        return {
            "trial_number": self.trial_number,
            "instruction": self.instruction,
            "word": self.word,
            "ink_color": self.ink_color,
            "condition": self.condition,
            "iti_ms": self.iti_ms,
            "reaction_time_ms": self.reaction_time_ms,
            "correctness": self.correctness,
            "user_answer": self.user_answer,
        }
