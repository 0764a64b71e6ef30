"""Research data export views.

Access restricted to superusers and staff with the ``export_data`` permission.
Participants are identified by their user pk only, never by username or email.
Export events are logged to the standard Python logger.
"""
import csv
import io
import json
import logging

from django.contrib.auth.mixins import LoginRequiredMixin
from django.contrib.auth.mixins import UserPassesTestMixin
from django.http import HttpResponse
from django.utils import timezone
from django.views import View

from promptstudy.chat.models import ChatInteraction
from promptstudy.stroop.models import StroopRun
from promptstudy.stroop.models import StroopTrialRecord

logger = logging.getLogger(__name__)


class ExportAccessMixin(LoginRequiredMixin, UserPassesTestMixin):
    """Allow access only to superusers or staff with export_data permission."""

    def test_func(self):
        user = self.request.user
        return user.is_superuser or (user.is_staff and user.has_perm("auth.export_data"))


def _pseudo_id(user_id):
    return str(user_id)


def _iso(value):
    return value.isoformat() if value else ""


def _date_filtered(qs, request, field):
    from_date = request.GET.get("from_date")
    to_date = request.GET.get("to_date")
    if from_date:
        qs = qs.filter(**{f"{field}__date__gte": from_date})
    if to_date:
        qs = qs.filter(**{f"{field}__date__lte": to_date})
    return qs


def _csv_response(rows, header, prefix):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    writer.writerows(rows)
    response = HttpResponse(output.getvalue(), content_type="text/csv")
    response["Content-Disposition"] = f'attachment; filename="{prefix}_{timezone.now().date().isoformat()}.csv"'
    return response


# ─────────────────────────────────────────────────────────────────────────────
# Stroop trials CSV
# ─────────────────────────────────────────────────────────────────────────────


class StroopTrialCsvExportView(ExportAccessMixin, View):
    """
    One row per Stroop trial of every finished run.

    Query params:
        from_date  YYYY-MM-DD  inclusive lower bound on run started_at
        to_date    YYYY-MM-DD  inclusive upper bound on run started_at
    """

    HEADER = [
        "participant_id",
        "run_id",
        "trial_number",
        "instruction",
        "word",
        "ink_color",
        "condition",
        "iti_ms",
        "reaction_time_ms",
        "correctness",
        "user_answer",
        "created_at_utc",
    ]

    def get(self, request):
        qs = StroopTrialRecord.objects.filter(run__ended_at__isnull=False).select_related("run")
        qs = _date_filtered(qs, request, "run__started_at").order_by("run__started_at", "trial_number")
        rows = [self._row(trial) for trial in qs]
        logger.info("Stroop trial CSV export by user=%s rows=%d", request.user.pk, len(rows))
        return _csv_response(rows, self.HEADER, "stroop_trials")

    def _row(self, trial):
        return [
            _pseudo_id(trial.run.user_id),
            str(trial.run_id),
            trial.trial_number,
            trial.instruction,
            trial.word,
            trial.ink_color,
            trial.condition,
            trial.iti_ms,
            "" if trial.reaction_time_ms is None else trial.reaction_time_ms,
            "" if trial.correctness is None else trial.correctness,
            trial.user_answer or "",
            _iso(trial.created_at),
        ]


# ─────────────────────────────────────────────────────────────────────────────
# Chat interactions CSV
# ─────────────────────────────────────────────────────────────────────────────


class ChatInteractionCsvExportView(ExportAccessMixin, View):
    """
    One row per prompt/response exchange. Raw request and response
    snapshots are only in the JSON export.

    Query params: from_date, to_date (bounds on created_at)
    """

    HEADER = [
        "participant_id",
        "session_id",
        "scenario",
        "task_code",
        "prompt_index_no",
        "prompt",
        "response",
        "prompting_time_ms",
        "role_used",
        "model",
        "api_call_id",
        "token_input",
        "token_output",
        "finish_reason",
        "latency_ms",
        "first_response_at_utc",
        "created_at_utc",
    ]

    def get(self, request):
        qs = _date_filtered(ChatInteraction.objects.all(), request, "created_at").order_by(
            "session_id", "prompt_index_no"
        )
        rows = [self._row(interaction) for interaction in qs]
        logger.info("Chat interaction CSV export by user=%s rows=%d", request.user.pk, len(rows))
        return _csv_response(rows, self.HEADER, "chat_interactions")

    def _row(self, interaction):
        return [
            _pseudo_id(interaction.user_id),
            interaction.session_id,
            interaction.scenario,
            interaction.task_code,
            interaction.prompt_index_no,
            interaction.prompt,
            interaction.response,
            "" if interaction.prompting_time_ms is None else interaction.prompting_time_ms,
            interaction.role_used,
            interaction.model,
            interaction.api_call_id,
            "" if interaction.token_input is None else interaction.token_input,
            "" if interaction.token_output is None else interaction.token_output,
            interaction.finish_reason,
            "" if interaction.latency_ms is None else interaction.latency_ms,
            _iso(interaction.first_response_at),
            _iso(interaction.created_at),
        ]


# ─────────────────────────────────────────────────────────────────────────────
# Full JSON dump
# ─────────────────────────────────────────────────────────────────────────────


class FullJsonExportView(ExportAccessMixin, View):
    """
    Complete nested export: finished Stroop runs with their trials, and
    every chat interaction including the raw request/response snapshots.

    Query params: from_date, to_date
    """

    def get(self, request):
        run_qs = _date_filtered(StroopRun.objects.filter(ended_at__isnull=False), request, "started_at").order_by(
            "started_at"
        )
        trials_by_run = {}
        for trial in StroopTrialRecord.objects.filter(run__in=run_qs).order_by("trial_number"):
            trials_by_run.setdefault(trial.run_id, []).append(trial.as_trial_dict())

        stroop_runs = [
            {
                "participant_id": _pseudo_id(run.user_id),
                "run_id": str(run.id),
                "started_at": run.started_at.isoformat(),
                "ended_at": run.ended_at.isoformat(),
                "total_trials": run.total_trials,
                "iti_ms": run.iti_ms,
                "trial_timer_ms": run.trial_timer_ms,
                "instruction_switch_period": run.instruction_switch_period,
                "random_seed": run.random_seed,
                "summary_metrics": run.summary_metrics,
                "trials": trials_by_run.get(run.id, []),
            }
            for run in run_qs
        ]

        chat_qs = _date_filtered(ChatInteraction.objects.all(), request, "created_at").order_by(
            "session_id", "prompt_index_no"
        )
        chat_interactions = [
            {
                "participant_id": _pseudo_id(interaction.user_id),
                "session_id": interaction.session_id,
                "scenario": interaction.scenario,
                "task_code": interaction.task_code,
                "prompt_index_no": interaction.prompt_index_no,
                "prompt": interaction.prompt,
                "response": interaction.response,
                "prompting_time_ms": interaction.prompting_time_ms,
                "model": interaction.model,
                "token_input": interaction.token_input,
                "token_output": interaction.token_output,
                "finish_reason": interaction.finish_reason,
                "latency_ms": interaction.latency_ms,
                "first_response_at": interaction.first_response_at.isoformat()
                if interaction.first_response_at
                else None,
                "created_at": interaction.created_at.isoformat(),
                "raw_request": interaction.raw_request,
                "raw_response": interaction.raw_response,
            }
            for interaction in chat_qs
        ]

        logger.info(
            "Full JSON export by user=%s runs=%d interactions=%d",
            request.user.pk,
            len(stroop_runs),
            len(chat_interactions),
        )
        response = HttpResponse(
            json.dumps({"stroop_runs": stroop_runs, "chat_interactions": chat_interactions}, indent=2),
            content_type="application/json",
        )
        response["Content-Disposition"] = (
            f'attachment; filename="export_{timezone.now().date().isoformat()}.json"'
        )
        return response


stroop_trial_csv_export_view = StroopTrialCsvExportView.as_view()
chat_interaction_csv_export_view = ChatInteractionCsvExportView.as_view()
full_json_export_view = FullJsonExportView.as_view()
