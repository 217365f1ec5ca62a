# notifications/ws_jwt.py
import urllib.parse
import logging
from channels.db import database_sync_to_async
from django.db import close_old_connections
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, AuthenticationFailed

log = logging.getLogger(__name__)


class JWTAuthMiddleware:
    """
    Authenticates websocket connections from a ``?token=<access>`` query
    parameter. scope['user'] is only overridden when the token validates.
    """

    def __init__(self, inner):
        self.inner = inner
        self.jwt_auth = JWTAuthentication()

    async def __call__(self, scope, receive, send):
        if scope.get("type") == "websocket":
            raw_qs = scope.get("query_string", b"").decode("utf-8")
            params = urllib.parse.parse_qs(raw_qs)
            token = (params.get("token") or params.get("access") or [None])[0]

            if token:
                user = await self._authenticate(token)
                if user is not None:
                    scope["user"] = user
                    log.info("WS_JWT OK: path=%s user=%s", scope.get("path"), user.id)
                else:
                    log.warning("WS_JWT INVALID: path=%s token_prefix=%s...",
                                scope.get("path"), token[:12])

        return await self.inner(scope, receive, send)

    @database_sync_to_async
    def _authenticate(self, raw_token):
        try:
            validated = self.jwt_auth.get_validated_token(raw_token)
            user = self.jwt_auth.get_user(validated)
        except (InvalidToken, AuthenticationFailed):
            return None
        finally:
            close_old_connections()
        return user
