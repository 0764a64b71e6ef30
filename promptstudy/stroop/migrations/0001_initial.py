import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations
from django.db import models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="StroopRun",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("total_trials", models.PositiveIntegerField(default=0)),
                ("iti_ms", models.PositiveIntegerField()),
                ("trial_timer_ms", models.PositiveIntegerField()),
                ("instruction_switch_period", models.PositiveIntegerField()),
                ("random_seed", models.CharField(max_length=64)),
                ("summary_metrics", models.JSONField(default=dict)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stroop_runs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["user", "started_at"], name="stroop_run_user_started_idx")],
            },
        ),
        migrations.CreateModel(
            name="StroopTrialRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("trial_number", models.PositiveIntegerField()),
                (
                    "instruction",
                    models.CharField(
                        choices=[("word", "Choose the WORD"), ("color", "Choose the COLOR")],
                        max_length=10,
                    ),
                ),
                ("word", models.CharField(max_length=10)),
                ("ink_color", models.CharField(max_length=10)),
                (
                    "condition",
                    models.CharField(
                        choices=[("consistent", "Consistent"), ("inconsistent", "Inconsistent")],
                        max_length=12,
                    ),
                ),
                ("iti_ms", models.PositiveIntegerField()),
                ("reaction_time_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("correctness", models.BooleanField(blank=True, null=True)),
                ("user_answer", models.CharField(blank=True, max_length=20, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="trials",
                        to="stroop.strooprun",
                    ),
                ),
            ],
            options={
                "ordering": ["run", "trial_number"],
                "constraints": [
                    models.UniqueConstraint(fields=("run", "trial_number"), name="unique_trial_number_per_run"),
                ],
            },
        ),
    ]
