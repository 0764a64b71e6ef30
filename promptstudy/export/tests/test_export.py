"""Tests for research data export views."""
import csv
import io
import json

import pytest
from django.contrib.auth.models import Permission
from django.contrib.contenttypes.models import ContentType
from django.urls import reverse

from promptstudy.chat.models import ChatInteraction
from promptstudy.export.views import StroopTrialCsvExportView
from promptstudy.stroop.helpers.store import create_run
from promptstudy.stroop.helpers.store import finish_run
from promptstudy.stroop.models import StroopTrialRecord
from promptstudy.tests.factories import UserFactory

VIEW_NAMES = ["export:stroop_trials_csv", "export:chat_interactions_csv", "export:full_json"]


def _superuser():
    return UserFactory(is_superuser=True, is_staff=True)


def _staff_with_export_permission():
    user = UserFactory(is_staff=True)
    permission, _ = Permission.objects.get_or_create(
        codename="export_data",
        content_type=ContentType.objects.get_for_model(user.__class__),
        defaults={"name": "Can export research data"},
    )
    user.user_permissions.add(permission)
    return user


def _trial(run, trial_number, **overrides):
    fields = {
        "run": run,
        "trial_number": trial_number,
        "instruction": "color",
        "word": "RED",
        "ink_color": "blue",
        "condition": "inconsistent",
        "iti_ms": 1000,
        "reaction_time_ms": 720,
        "correctness": True,
        "user_answer": "blue",
    }
    fields.update(overrides)
    return StroopTrialRecord.objects.create(**fields)


def _finished_run(user, trials=1):
    run = create_run(user)
    for number in range(1, trials + 1):
        _trial(run, number)
    return finish_run(run)


def _interaction(user, index=1, session_id="session-1"):
    return ChatInteraction.objects.create(
        user=user,
        session_id=session_id,
        scenario="cognitive_load",
        prompt_index_no=index,
        prompt="Summarise this",
        response="Done.",
        model="gpt-4o-mini",
        token_input=4,
        token_output=2,
        finish_reason="stop",
        raw_request={"model": "gpt-4o-mini"},
        raw_response={"choices": []},
    )


def _csv_rows(response):
    return list(csv.reader(io.StringIO(response.content.decode())))


# ─────────────────────────────────────────────────────────────────────────────
# Access control (common to all export views)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.django_db
class TestExportAccessControl:
    @pytest.mark.parametrize("view_name", VIEW_NAMES)
    def test_anonymous_redirected(self, client, view_name):
        response = client.get(reverse(view_name))
        assert response.status_code == 302

    @pytest.mark.parametrize("view_name", VIEW_NAMES)
    def test_regular_user_forbidden(self, client, view_name):
        client.force_login(UserFactory())
        response = client.get(reverse(view_name))
        assert response.status_code == 403

    @pytest.mark.parametrize("view_name", VIEW_NAMES)
    def test_staff_without_permission_forbidden(self, client, view_name):
        client.force_login(UserFactory(is_staff=True))
        response = client.get(reverse(view_name))
        assert response.status_code == 403

    @pytest.mark.parametrize("view_name", VIEW_NAMES)
    def test_superuser_allowed(self, client, view_name):
        client.force_login(_superuser())
        response = client.get(reverse(view_name))
        assert response.status_code == 200

    def test_staff_with_permission_allowed(self, client):
        client.force_login(_staff_with_export_permission())
        response = client.get(reverse("export:full_json"))
        assert response.status_code == 200


# ─────────────────────────────────────────────────────────────────────────────
# Stroop trial CSV export
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.django_db
class TestStroopTrialCsvExport:
    def _get(self, client, **params):
        client.force_login(_superuser())
        return client.get(reverse("export:stroop_trials_csv"), params)

    def test_csv_attachment(self, client):
        response = self._get(client)
        assert "text/csv" in response["Content-Type"]
        assert "attachment" in response["Content-Disposition"]
        assert _csv_rows(response) == [StroopTrialCsvExportView.HEADER]

    def test_one_row_per_trial_of_finished_runs(self, client):
        participant = UserFactory()
        run = _finished_run(participant, trials=3)
        unfinished = create_run(participant)
        _trial(unfinished, 1)
        rows = _csv_rows(self._get(client))
        assert len(rows) == 4
        assert {row[1] for row in rows[1:]} == {str(run.id)}
        assert rows[1][0] == str(participant.pk)

    def test_timeouts_export_blank_cells(self, client):
        run = create_run(UserFactory())
        _trial(run, 1, correctness=None, user_answer=None)
        finish_run(run)
        row = _csv_rows(self._get(client))[1]
        assert row[9] == ""
        assert row[10] == ""

    def test_no_pii(self, client):
        participant = UserFactory()
        _finished_run(participant)
        content = self._get(client).content.decode()
        assert participant.email not in content
        assert participant.username not in content

    def test_date_filter(self, client):
        _finished_run(UserFactory())
        assert len(_csv_rows(self._get(client, from_date="2099-01-01"))) == 1


# ─────────────────────────────────────────────────────────────────────────────
# Chat interaction CSV export
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.django_db
class TestChatInteractionCsvExport:
    def _get(self, client, **params):
        client.force_login(_superuser())
        return client.get(reverse("export:chat_interactions_csv"), params)

    def test_rows(self, client):
        participant = UserFactory()
        _interaction(participant, 1)
        _interaction(participant, 2)
        rows = _csv_rows(self._get(client))
        assert len(rows) == 3
        assert rows[1][0] == str(participant.pk)
        assert rows[1][4] == "1"
        assert rows[2][4] == "2"
        assert rows[1][2] == "cognitive_load"

    def test_date_filter(self, client):
        _interaction(UserFactory())
        assert len(_csv_rows(self._get(client, to_date="2000-01-01"))) == 1


# ─────────────────────────────────────────────────────────────────────────────
# Full JSON export
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.django_db
class TestFullJsonExport:
    def _get(self, client, **params):
        client.force_login(_superuser())
        return client.get(reverse("export:full_json"), params)

    def test_empty_export(self, client):
        response = self._get(client)
        assert "application/json" in response["Content-Type"]
        assert json.loads(response.content) == {"stroop_runs": [], "chat_interactions": []}

    def test_runs_and_trials_nested(self, client):
        participant = UserFactory()
        run = _finished_run(participant, trials=2)
        _interaction(participant)
        data = json.loads(self._get(client).content)

        assert len(data["stroop_runs"]) == 1
        entry = data["stroop_runs"][0]
        assert entry["participant_id"] == str(participant.pk)
        assert entry["run_id"] == str(run.id)
        assert entry["total_trials"] == 2
        assert [t["trial_number"] for t in entry["trials"]] == [1, 2]
        assert entry["summary_metrics"]["total_trials"] == 2

        interaction = data["chat_interactions"][0]
        assert interaction["raw_request"] == {"model": "gpt-4o-mini"}
        assert interaction["session_id"] == "session-1"

    def test_no_pii(self, client):
        participant = UserFactory()
        _finished_run(participant)
        _interaction(participant)
        content = self._get(client).content.decode()
        assert participant.email not in content
        assert participant.username not in content
