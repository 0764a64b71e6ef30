from django.urls import path

from .views import (
    mark_inactive_view,
    run_finish_view,
    run_start_view,
    stroop_config_view,
    trial_submit_view,
)

app_name = "stroop"
urlpatterns = [
    path("api/config/", view=stroop_config_view, name="config"),
    path("api/runs/", view=run_start_view, name="run_start"),
    path("api/runs/<uuid:run_id>/finish/", view=run_finish_view, name="run_finish"),
    path("api/trials/", view=trial_submit_view, name="trial_submit"),
    path("api/mark-inactive/", view=mark_inactive_view, name="mark_inactive"),
]
