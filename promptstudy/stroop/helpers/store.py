"""
Persistence for Stroop runs and trial outcomes.

The engine only sees the ``TrialStore`` protocol; ``DjangoTrialStore`` is the
ORM-backed implementation bound to one ``StroopRun``.
"""
import logging
import uuid
from typing import Optional, Protocol

from django.db import transaction
from django.utils import timezone

from promptstudy.stroop.helpers.machine import INACTIVE_ANSWER
from promptstudy.stroop.helpers.machine import StroopConfig
from promptstudy.stroop.helpers.machine import TrialOutcome
from promptstudy.stroop.helpers.metrics import compute_stroop_summary

logger = logging.getLogger(__name__)


class TrialStore(Protocol):
    def record(self, outcome: TrialOutcome) -> None:
        ...

    def mark_last_inactive(self, user_id: str, session_id: str) -> bool:
        ...


class DjangoTrialStore:
    def __init__(self, run):
        self.run = run

    def record(self, outcome: TrialOutcome):
        from promptstudy.stroop.models import StroopTrialRecord  # local import avoids circular

        # savepoint keeps a failed insert from poisoning an enclosing transaction
        with transaction.atomic():
            return StroopTrialRecord.objects.create(
                run=self.run,
                trial_number=outcome.trial_number,
                instruction=outcome.instruction,
                word=outcome.word,
                ink_color=outcome.ink_color,
                condition=outcome.condition,
                iti_ms=outcome.iti_ms,
                reaction_time_ms=outcome.reaction_time_ms,
                correctness=outcome.correctness,
                user_answer=outcome.user_answer,
            )

    def mark_last_inactive(self, user_id: str, session_id: str) -> bool:
        return mark_last_trial_inactive(user_id, session_id)


def mark_last_trial_inactive(user_id, session_id) -> bool:
    """
    Set user_answer to "inactive" on the most recent trial of the run.

    Returns False when the run has no trials yet.
    """
    from promptstudy.stroop.models import StroopTrialRecord

    latest = (
        StroopTrialRecord.objects.filter(run_id=session_id, run__user_id=user_id)
        .order_by("-created_at", "-trial_number")
        .first()
    )
    if latest is None:
        return False
    StroopTrialRecord.objects.filter(pk=latest.pk).update(user_answer=INACTIVE_ANSWER)
    logger.info("Marked trial %d of run %s inactive", latest.trial_number, session_id)
    return True


def create_run(user, config: Optional[StroopConfig] = None, seed: Optional[str] = None):
    """
    Open a StroopRun with the configuration the engine will use.

    The seed is stored so the stimulus sequence can be reproduced for auditing.
    """
    from promptstudy.stroop.models import StroopRun

    config = config or StroopConfig.from_settings()
    run = StroopRun.objects.create(
        user=user,
        iti_ms=config.iti_ms,
        trial_timer_ms=config.trial_timer_ms,
        instruction_switch_period=config.instruction_switch_period,
        random_seed=seed or str(uuid.uuid4()),
    )
    logger.info("Created Stroop run %s for user %s", run.id, user.pk)
    return run


def finish_run(run):
    """Stamp ended_at, count the trials and store the summary metrics."""
    from promptstudy.stroop.models import StroopRun

    with transaction.atomic():
        trials = [t.as_trial_dict() for t in run.trials.order_by("trial_number")]
        summary = compute_stroop_summary(trials)
        StroopRun.objects.filter(pk=run.pk).update(
            ended_at=timezone.now(),
            total_trials=len(trials),
            summary_metrics=summary,
        )
    run.refresh_from_db()
    return run
