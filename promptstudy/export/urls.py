from django.urls import path

from .views import chat_interaction_csv_export_view
from .views import full_json_export_view
from .views import stroop_trial_csv_export_view

app_name = "export"

urlpatterns = [
    path("stroop-trials.csv", stroop_trial_csv_export_view, name="stroop_trials_csv"),
    path("chat-interactions.csv", chat_interaction_csv_export_view, name="chat_interactions_csv"),
    path("full.json", full_json_export_view, name="full_json"),
]
