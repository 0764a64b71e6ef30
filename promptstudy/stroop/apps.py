from django.apps import AppConfig


class StroopAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "promptstudy.stroop"
    label = "stroop"
