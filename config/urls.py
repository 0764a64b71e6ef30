from django.contrib import admin
from django.urls import include
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("stroop/", include("promptstudy.stroop.urls", namespace="stroop")),
    path("chat/", include("promptstudy.chat.urls", namespace="chat")),
    path("export/", include("promptstudy.export.urls", namespace="export")),
]
