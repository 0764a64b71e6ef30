from django.urls import path

from .views import chat_history_view
from .views import chat_stream_view

app_name = "chat"
urlpatterns = [
    path("api/stream/", view=chat_stream_view, name="stream"),
    path("api/history/<str:session_id>/", view=chat_history_view, name="history"),
]
