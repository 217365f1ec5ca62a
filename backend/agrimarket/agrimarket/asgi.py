# asgi.py
import os
import django
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "agrimarket.settings")
django.setup()

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack
from channels.security.websocket import AllowedHostsOriginValidator
from notifications.ws_jwt import JWTAuthMiddleware
from .routing import websocket_urlpatterns

application = ProtocolTypeRouter({
    "http": get_asgi_application(),
    # notification feed: session user first, ?token=<access> replaces it when valid
    "websocket": AllowedHostsOriginValidator(
        AuthMiddlewareStack(JWTAuthMiddleware(URLRouter(websocket_urlpatterns)))
    ),
})
