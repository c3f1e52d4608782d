"""
Client-side authentication state.

``AuthState`` owns the signed-in user for one application session. It calls
the accounts API, mirrors the session into a ``TokenStore`` and notifies
subscribers after every change. Construct one per session and hand it to
whatever renders the UI:

    state = AuthState(AuthAPI(), FileTokenStore())
    await state.start()
    state.subscribe(render)
    await state.login("ada@x.com", "Secret123")

Overlapping calls are allowed. Each call takes a sequence number when it
starts, and a result only reaches the state if no later-started call has
already been applied. Logout takes a number too, so responses still in
flight when the user logs out are dropped.
"""

import asyncio
import logging
import mimetypes
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from zenyukti.client.api import ApiError, AuthAPI, ClientError, NetworkError
from zenyukti.client.config import client_settings
from zenyukti.client.storage import TokenStore
from zenyukti.core.urls import resolve_avatar_url

logger = logging.getLogger(__name__)

Listener = Callable[["AuthState"], None]


class ClientUser(BaseModel):
    id: str
    email: str
    name: str
    avatar: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("avatar")
    @classmethod
    def absolutize_avatar(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        origin = (info.context or {}).get("api_origin")
        if origin is None:
            return value or None
        return resolve_avatar_url(value, origin)

    @classmethod
    def from_api(cls, payload: dict[str, Any], api_origin: str) -> "ClientUser":
        return cls.model_validate(payload, context={"api_origin": api_origin})

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class AuthState:
    def __init__(self, api: AuthAPI, storage: TokenStore, api_origin: Optional[str] = None):
        self._api = api
        self._storage = storage
        self._api_origin = api_origin or client_settings.get_api_origin()

        self.user: Optional[ClientUser] = None
        self.error: Optional[str] = None
        self._token: Optional[str] = None

        self._pending = 0
        self._issued = 0
        self._applied = 0
        self._listeners: list[Listener] = []
        self._verify_task: Optional[asyncio.Task] = None

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener after every state change; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Auth state listener failed")

    # Sequencing
    # -----------------------------

    def _next_seq(self) -> int:
        self._issued += 1
        return self._issued

    def _begin(self) -> int:
        seq = self._next_seq()
        self._pending += 1
        self.error = None
        self._notify()
        return seq

    def _finish(self) -> None:
        self._pending -= 1
        self._notify()

    def _is_current(self, seq: int) -> bool:
        return seq > self._applied

    # Storage and memory change together in these helpers; nothing awaits
    # between the two writes

    def _apply_session(self, seq: int, token: str, user: ClientUser) -> bool:
        if not self._is_current(seq):
            logger.debug(f"Dropping stale session result #{seq}")
            return False
        self._storage.save(token, user.snapshot())
        self._token = token
        self.user = user
        self._applied = seq
        return True

    def _apply_user(self, seq: int, token: str, user: ClientUser) -> bool:
        # The result belongs to the session whose token made the request
        if not self._is_current(seq) or self._token != token:
            logger.debug(f"Dropping stale user result #{seq}")
            return False
        self._storage.save(token, user.snapshot())
        self.user = user
        self._applied = seq
        return True

    def _apply_anonymous(self, seq: int) -> None:
        self._storage.clear()
        self._token = None
        self.user = None
        self._applied = seq

    def _record_error(self, seq: int, exc: ClientError) -> None:
        if self._is_current(seq):
            self.error = exc.message

    # Response parsing
    # -----------------------------

    def _parse_user(self, body: dict[str, Any]) -> ClientUser:
        try:
            return ClientUser.from_api(body["data"]["user"], self._api_origin)
        except (KeyError, TypeError, PydanticValidationError):
            raise NetworkError("The server sent an unreadable response.")

    def _parse_session(self, body: dict[str, Any]) -> tuple[str, ClientUser]:
        user = self._parse_user(body)
        token = body["data"].get("token")
        if not isinstance(token, str) or not token:
            raise NetworkError("The server sent an unreadable response.")
        return token, user

    def _require_token(self) -> str:
        if not self._token:
            raise ApiError("Not authenticated", 401)
        return self._token

    # Operations
    # -----------------------------

    async def _session_call(self, call: Callable[[], Awaitable[dict[str, Any]]]) -> ClientUser:
        seq = self._begin()
        try:
            token, user = self._parse_session(await call())
            self._apply_session(seq, token, user)
            return user
        except ClientError as e:
            self._record_error(seq, e)
            raise
        finally:
            self._finish()

    async def _user_call(self, call: Callable[[str], Awaitable[dict[str, Any]]]) -> ClientUser:
        seq = self._begin()
        try:
            token = self._require_token()
            user = self._parse_user(await call(token))
            self._apply_user(seq, token, user)
            return user
        except ClientError as e:
            # A failed mutation leaves the signed-in user untouched
            self._record_error(seq, e)
            raise
        finally:
            self._finish()

    async def login(self, email: str, password: str) -> ClientUser:
        return await self._session_call(lambda: self._api.login(email, password))

    async def signup(self, name: str, email: str, password: str) -> ClientUser:
        return await self._session_call(lambda: self._api.signup(name, email, password))

    async def reset_password(self, ticket: str, password: str) -> ClientUser:
        return await self._session_call(lambda: self._api.reset_password(ticket, password))

    async def update_profile(self, name: str, email: str) -> ClientUser:
        return await self._user_call(lambda token: self._api.update_profile(token, name, email))

    async def upload_avatar(self, filename: str, content: bytes, content_type: Optional[str] = None) -> ClientUser:
        if content_type is None:
            content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        return await self._user_call(
            lambda token: self._api.upload_avatar(token, filename, content, content_type)
        )

    async def forgot_password(self, email: str) -> str:
        """Request a reset email; returns the server's (account-agnostic) message"""
        seq = self._begin()
        try:
            body = await self._api.forgot_password(email)
            return str(body.get("message", ""))
        except ClientError as e:
            self._record_error(seq, e)
            raise
        finally:
            self._finish()

    def logout(self) -> None:
        """Forget the session locally. The token itself stays valid until it expires."""
        self._apply_anonymous(self._next_seq())
        self.error = None
        if self._verify_task is not None and not self._verify_task.done():
            self._verify_task.cancel()
        self._notify()

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    # Startup
    # -----------------------------

    async def start(self) -> Optional[asyncio.Task]:
        """
        Restore the stored session without waiting for the server.

        When a token and user snapshot are stored the state is authenticated
        as soon as this returns; the returned task then checks the token
        against the server in the background.
        """
        token, snapshot = self._storage.load()
        if not token or not snapshot:
            if token or snapshot:
                self._storage.clear()
            return None

        try:
            user = ClientUser.from_api(snapshot, self._api_origin)
        except PydanticValidationError:
            logger.warning("Discarding unreadable stored user snapshot")
            self._storage.clear()
            return None

        seq = self._next_seq()
        self._apply_session(seq, token, user)
        self._notify()

        self._verify_task = asyncio.get_running_loop().create_task(
            self._verify(self._next_seq(), token)
        )
        return self._verify_task

    async def _verify(self, seq: int, token: str) -> None:
        try:
            user = self._parse_user(await self._api.get_me(token))
        except ApiError as e:
            if e.status_code >= 500:
                # Server trouble says nothing about the token
                logger.warning(f"Session check failed with status {e.status_code}; keeping stored session")
                self._record_error(seq, e)
            elif self._is_current(seq):
                logger.info("Stored session rejected by server; signing out")
                self._apply_anonymous(seq)
            self._notify()
            return
        except NetworkError as e:
            logger.warning(f"Session check could not reach the server: {e.message}")
            self._record_error(seq, e)
            self._notify()
            return

        if self._apply_user(seq, token, user):
            self._notify()

    async def close(self) -> None:
        """Stop the background session check, if it is still running"""
        if self._verify_task is not None and not self._verify_task.done():
            self._verify_task.cancel()
            try:
                await self._verify_task
            except asyncio.CancelledError:
                pass
