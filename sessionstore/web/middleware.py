"""
Server-side session middleware.

Works like Starlette's ``SessionMiddleware`` but keeps only the signed session
id in the cookie; the session body lives in a ``SessionStore``.
"""

import copy
import logging
import secrets
import typing

from itsdangerous import BadSignature, TimestampSigner
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from sessionstore.core.session_store import SessionStore, StorageError

logger = logging.getLogger(__name__)

# Key the middleware owns inside the stored payload
COOKIE_KEY = "cookie"


class ServerSessionMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        secret_key: str,
        session_cookie: str = "session",
        max_age: int = 14 * 24 * 60 * 60,  # 14 days, in seconds
        path: str = "/",
        same_site: typing.Literal["lax", "strict", "none"] = "lax",
        https_only: bool = False,
        domain: typing.Optional[str] = None,
    ) -> None:
        self.app = app
        self.store = store
        self.signer = TimestampSigner(str(secret_key))
        self.session_cookie = session_cookie
        self.max_age = max_age
        self.path = path
        self.security_flags = "httponly; samesite=" + same_site
        if https_only:  # Secure flag can be used with HTTPS only
            self.security_flags += "; secure"
        if domain is not None:
            self.security_flags += f"; domain={domain}"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):  # pragma: no cover
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        sid = self._unsign(connection.cookies.get(self.session_cookie))
        loaded: typing.Optional[dict] = None

        if sid is not None:
            try:
                payload = await self.store.get(sid)
            except StorageError as exc:
                logger.warning(f"Session load failed, continuing without session: {exc}")
                payload = None
            if isinstance(payload, dict):
                loaded = {k: v for k, v in payload.items() if k != COOKIE_KEY}
            else:
                # Unknown or expired id: never adopt a client-chosen sid
                sid = None

        scope["session"] = copy.deepcopy(loaded) if loaded is not None else {}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                header_value = await self._commit(scope["session"], sid, loaded)
                if header_value is not None:
                    headers = MutableHeaders(scope=message)
                    headers.append("Set-Cookie", header_value)
            await send(message)

        await self.app(scope, receive, send_wrapper)

    async def _commit(
        self,
        session: dict,
        sid: typing.Optional[str],
        loaded: typing.Optional[dict],
    ) -> typing.Optional[str]:
        """Persist the session and return the Set-Cookie value, if any."""
        try:
            if session:
                payload = {**session, COOKIE_KEY: {"maxAge": self.max_age * 1000}}
                if sid is None:
                    sid = secrets.token_urlsafe(32)
                    await self.store.set(sid, payload)
                elif session != loaded:
                    await self.store.set(sid, payload)
                else:
                    await self.store.touch(sid, payload)
                return self._cookie(self.signer.sign(sid).decode("utf-8"), f"Max-Age={self.max_age}; ")
            if loaded is not None and sid is not None:
                await self.store.destroy(sid)
                return self._cookie("null", "expires=Thu, 01 Jan 1970 00:00:00 GMT; ")
        except StorageError as exc:
            logger.warning(f"Session save failed, response sent without session: {exc}")
        return None

    def _cookie(self, data: str, lifetime: str) -> str:
        return "{session_cookie}={data}; path={path}; {lifetime}{security_flags}".format(  # noqa E501
            session_cookie=self.session_cookie,
            data=data,
            path=self.path,
            lifetime=lifetime,
            security_flags=self.security_flags,
        )

    def _unsign(self, value: typing.Optional[str]) -> typing.Optional[str]:
        if not value:
            return None
        try:
            return self.signer.unsign(value.encode("utf-8"), max_age=self.max_age).decode("utf-8")
        except BadSignature:
            return None
