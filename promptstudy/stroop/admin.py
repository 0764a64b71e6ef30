from django.contrib import admin

from .models import StroopRun
from .models import StroopTrialRecord


@admin.register(StroopRun)
class StroopRunAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "started_at", "ended_at", "total_trials"]
    search_fields = ["user__username", "user__email"]
    ordering = ["-started_at"]


@admin.register(StroopTrialRecord)
class StroopTrialRecordAdmin(admin.ModelAdmin):
    list_display = ["run", "trial_number", "instruction", "condition", "correctness", "reaction_time_ms"]
    list_filter = ["instruction", "condition", "correctness"]
    search_fields = ["run__user__username"]
