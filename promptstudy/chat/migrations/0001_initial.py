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
            name="ChatInteraction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("session_id", models.CharField(db_index=True, max_length=64)),
                (
                    "scenario",
                    models.CharField(
                        choices=[
                            ("baseline", "Baseline"),
                            ("dual_task", "Dual task"),
                            ("under_stress", "Under stress"),
                            ("time_pressure", "Time pressure"),
                            ("cognitive_load", "Cognitive load"),
                        ],
                        default="baseline",
                        max_length=20,
                    ),
                ),
                ("task_code", models.CharField(blank=True, default="", max_length=64)),
                ("prompt_index_no", models.PositiveIntegerField()),
                ("prompt", models.TextField()),
                ("response", models.TextField(blank=True, default="")),
                ("prompting_time_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("role_used", models.CharField(default="user", max_length=16)),
                ("model", models.CharField(blank=True, default="", max_length=64)),
                ("api_call_id", models.CharField(blank=True, default="", max_length=128)),
                ("token_input", models.PositiveIntegerField(blank=True, null=True)),
                ("token_output", models.PositiveIntegerField(blank=True, null=True)),
                ("finish_reason", models.CharField(blank=True, default="", max_length=32)),
                ("latency_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("first_response_at", models.DateTimeField(blank=True, null=True)),
                ("raw_request", models.JSONField(blank=True, null=True)),
                ("raw_response", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_interactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["user", "session_id", "prompt_index_no"],
                "indexes": [models.Index(fields=["user", "session_id"], name="chat_user_session_idx")],
            },
        ),
    ]
