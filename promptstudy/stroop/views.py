import json
import logging

from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.db import transaction
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from promptstudy.stroop.helpers.machine import INACTIVE_ANSWER
from promptstudy.stroop.helpers.machine import StroopConfig
from promptstudy.stroop.helpers.stimuli import COLOR_WORDS
from promptstudy.stroop.helpers.stimuli import COLORS
from promptstudy.stroop.helpers.stimuli import Instruction
from promptstudy.stroop.helpers.stimuli import StroopTrial
from promptstudy.stroop.helpers.stimuli import answer_options
from promptstudy.stroop.helpers.store import create_run
from promptstudy.stroop.helpers.store import finish_run
from promptstudy.stroop.helpers.store import mark_last_trial_inactive
from promptstudy.stroop.models import StroopRun
from promptstudy.stroop.models import StroopTrialRecord

logger = logging.getLogger(__name__)


def _load_json(request):
    try:
        data = json.loads(request.body or b"{}")
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _non_negative_int(value):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError
    return value


def _get_owned_run(request, run_id):
    """
    Returns (run, error_response). Unknown ids are 422, other users' runs 403.
    """
    try:
        run = StroopRun.objects.get(id=run_id)
    except (StroopRun.DoesNotExist, ValidationError, ValueError, TypeError):
        return None, JsonResponse({"error": "Run not found"}, status=422)
    if run.user_id != request.user.pk:
        return None, JsonResponse({"error": "Forbidden"}, status=403)
    return run, None


class StroopConfigView(LoginRequiredMixin, View):
    """Timing configuration and response buttons for the browser task runner."""

    def get(self, request):
        config = StroopConfig.from_settings()
        return JsonResponse(
            {
                "config": config.to_dict(),
                "answer_options": {
                    Instruction.WORD.value: answer_options(Instruction.WORD),
                    Instruction.COLOR.value: answer_options(Instruction.COLOR),
                },
            }
        )


class RunStartView(LoginRequiredMixin, View):
    """
    Opens a StroopRun for the current user.

    Returns:
        201 {"run_id": "<uuid>", "seed": "<str>", "config": {...}}
    """

    def post(self, request):
        data = _load_json(request)
        if data is None:
            return JsonResponse({"error": "Invalid JSON"}, status=422)
        seed = data.get("seed")
        if seed is not None and not isinstance(seed, str):
            return JsonResponse({"error": "seed must be a string"}, status=422)
        config = StroopConfig.from_settings()
        run = create_run(request.user, config=config, seed=seed)
        return JsonResponse(
            {"run_id": str(run.id), "seed": run.random_seed, "config": config.to_dict()},
            status=201,
        )


class TrialSubmitView(LoginRequiredMixin, View):
    """
    Stores one resolved trial.

    Condition and correctness are re-derived from the stimulus and the
    answer; whatever the client computed is ignored. A null user_answer is a
    timeout.

    Returns:
        201 {"ok": true, "trial_number": n, "correctness": true|false|null}
        422 on validation failure
        403 run belongs to a different user
        409 run already finished, or trial_number already stored
    """

    REQUIRED_FIELDS = frozenset({"run_id", "trial_number", "instruction", "word", "ink_color"})

    def post(self, request):
        data = _load_json(request)
        if data is None:
            return JsonResponse({"error": "Invalid JSON"}, status=422)

        missing = self.REQUIRED_FIELDS - set(data.keys())
        if missing:
            return JsonResponse({"error": f"Missing fields: {', '.join(sorted(missing))}"}, status=422)

        if data["instruction"] not in Instruction.values:
            return JsonResponse({"error": f"Unknown instruction: '{data['instruction']}'"}, status=422)
        if data["word"] not in COLOR_WORDS:
            return JsonResponse({"error": f"Unknown word: '{data['word']}'"}, status=422)
        if data["ink_color"] not in COLORS:
            return JsonResponse({"error": f"Unknown ink_color: '{data['ink_color']}'"}, status=422)

        try:
            trial_number = _non_negative_int(data["trial_number"])
            if trial_number < 1:
                raise ValueError
            reaction_time_ms = data.get("reaction_time_ms")
            if reaction_time_ms is not None:
                reaction_time_ms = _non_negative_int(reaction_time_ms)
            iti_ms = data.get("iti_ms")
            if iti_ms is not None:
                iti_ms = _non_negative_int(iti_ms)
        except ValueError:
            return JsonResponse(
                {
                    "error": "trial_number must be a positive integer; "
                    "reaction_time_ms and iti_ms must be non-negative integers"
                },
                status=422,
            )

        user_answer = data.get("user_answer")
        if user_answer is not None and (not isinstance(user_answer, str) or len(user_answer) > 20):
            return JsonResponse({"error": "user_answer must be a short string or null"}, status=422)

        run, error = _get_owned_run(request, data["run_id"])
        if error:
            return error
        if run.is_finished:
            return JsonResponse({"error": "Run already finished"}, status=409)
        if iti_ms is None:
            iti_ms = run.iti_ms

        trial = StroopTrial(instruction=Instruction(data["instruction"]), word=data["word"], ink_color=data["ink_color"])
        if user_answer is None or user_answer == INACTIVE_ANSWER:
            correctness = None
        else:
            correctness = user_answer.strip().lower() == trial.correct_answer

        try:
            with transaction.atomic():
                StroopTrialRecord.objects.create(
                    run=run,
                    trial_number=trial_number,
                    instruction=trial.instruction,
                    word=trial.word,
                    ink_color=trial.ink_color,
                    condition=trial.condition,
                    iti_ms=iti_ms,
                    reaction_time_ms=reaction_time_ms,
                    correctness=correctness,
                    user_answer=user_answer,
                )
        except IntegrityError:
            return JsonResponse({"error": f"Trial {trial_number} already recorded"}, status=409)

        return JsonResponse({"ok": True, "trial_number": trial_number, "correctness": correctness}, status=201)


class MarkInactiveView(LoginRequiredMixin, View):
    """
    Flags the most recent trial of a run as an inactivity episode.

    POST body: { run_id }
    """

    def post(self, request):
        data = _load_json(request)
        if data is None:
            return JsonResponse({"error": "Invalid JSON"}, status=422)
        if not data.get("run_id"):
            return JsonResponse({"error": "run_id is required"}, status=422)
        run, error = _get_owned_run(request, data["run_id"])
        if error:
            return error
        updated = mark_last_trial_inactive(request.user.pk, run.id)
        return JsonResponse({"ok": True, "updated": updated})


class RunFinishView(LoginRequiredMixin, View):
    def post(self, request, run_id):
        run = get_object_or_404(StroopRun, id=run_id)
        if run.user_id != request.user.pk:
            return JsonResponse({"error": "Forbidden"}, status=403)
        if run.is_finished:
            return JsonResponse({"error": "Run already finished"}, status=409)
        run = finish_run(run)
        logger.info("Stroop run %s finished with %d trials", run.id, run.total_trials)
        return JsonResponse({"ok": True, "total_trials": run.total_trials, "summary": run.summary_metrics})


stroop_config_view = StroopConfigView.as_view()
run_start_view = RunStartView.as_view()
trial_submit_view = TrialSubmitView.as_view()
mark_inactive_view = MarkInactiveView.as_view()
run_finish_view = RunFinishView.as_view()
