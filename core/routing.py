# core/routing.py

from django.urls import path

from .consumers import NotificationConsumer, PayoutOpsConsumer

websocket_urlpatterns = [
    path('ws/notifications/<str:user_id>/', NotificationConsumer.as_asgi()),
    path('ws/payout-ops/', PayoutOpsConsumer.as_asgi()),
]
