from django.contrib import admin

from .models import ChatInteraction


@admin.register(ChatInteraction)
class ChatInteractionAdmin(admin.ModelAdmin):
    list_display = ["session_id", "prompt_index_no", "user", "scenario", "model", "latency_ms", "created_at"]
    list_filter = ["scenario", "model", "finish_reason"]
    search_fields = ["user__username", "session_id", "task_code"]
    ordering = ["-created_at"]
