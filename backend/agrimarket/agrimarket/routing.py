from notifications.routing import websocket_urlpatterns as notification_patterns

websocket_urlpatterns = [
    *notification_patterns,
]
