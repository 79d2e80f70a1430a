"""
Identity for a LaterLink session.

FirebaseIdentityProvider talks to the Firebase Authentication REST API and
keeps the signed-in identity in a small JSON file so a restart resumes the
same user. SessionInitializer drives the session through
uninitialized -> awaiting-identity -> ready (or failed).
"""

import json
import logging
import os
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

import requests
from google.auth import jwt
from pydantic import BaseModel, ValidationError

from .errors import AuthenticationFailed, ConfigurationMissing, LaterLinkError
from .models import SessionPhase

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_HOST = "identitytoolkit.googleapis.com"
SECURE_TOKEN_HOST = "securetoken.googleapis.com"

# the token endpoint answers these when the refresh token itself is no good
REJECTED_STATUSES = (400, 401, 403)

# refresh a little before the provider's stated expiry
EXPIRY_SKEW = timedelta(seconds=60)


class AuthUser(BaseModel):
    uid: str
    id_token: str
    refresh_token: str
    # naive UTC, the way google-auth credentials compare expiry
    expires_at: datetime


class PersistedSession(BaseModel):
    uid: str
    refresh_token: str


def _expiry(expires_in) -> datetime:
    return datetime.utcnow() + timedelta(seconds=int(expires_in or 3600)) - EXPIRY_SKEW


class FirebaseIdentityProvider:
    """Anonymous / custom-token sign-in against Firebase Auth."""

    def __init__(self, api_key: str, emulator_host: Optional[str] = None, http=None):
        self.api_key = api_key
        self.http = http or requests.Session()
        if emulator_host:
            self.toolkit_url = f"http://{emulator_host}/{IDENTITY_TOOLKIT_HOST}/v1"
            self.token_url = f"http://{emulator_host}/{SECURE_TOKEN_HOST}/v1/token"
        else:
            self.toolkit_url = f"https://{IDENTITY_TOOLKIT_HOST}/v1"
            self.token_url = f"https://{SECURE_TOKEN_HOST}/v1/token"
        self.current_user: Optional[AuthUser] = None
        self.session_file: Optional[Path] = None
        self._listeners: List[Callable[[Optional[AuthUser]], None]] = []
        # google-auth refreshes credentials from gRPC worker threads
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings) -> "FirebaseIdentityProvider":
        if not settings.api_key:
            raise ConfigurationMissing("Firebase config has no apiKey.")
        return cls(settings.api_key, emulator_host=settings.auth_emulator_host)

    # --- persistence -------------------------------------------------------

    def set_persistence(self, session_file: Path):
        """
        Keep the identity in session_file from now on, and resume the
        identity already stored there if it can still be refreshed.

        Transport errors propagate and leave the file alone, so a later
        start can resume the same user.
        """
        session_file = Path(session_file)
        session_file.parent.mkdir(parents=True, exist_ok=True)
        self.session_file = session_file
        if not session_file.exists():
            return
        try:
            with open(session_file, "r") as f:
                saved = PersistedSession.model_validate(json.load(f))
        except (ValueError, ValidationError) as e:
            logger.warning("Discarding unreadable session file %s: %s", session_file, e)
            session_file.unlink()
            return
        try:
            user = self._refresh_token(saved.refresh_token, saved.uid)
        except requests.HTTPError as e:
            if e.response is None or e.response.status_code not in REJECTED_STATUSES:
                raise
            # stale or revoked: start signed out
            logger.warning("Persisted session for %s could not be resumed: %s", saved.uid, e)
            session_file.unlink()
            return
        with self._lock:
            self.current_user = user

    def _save_session(self):
        if self.session_file is None:
            return
        if self.current_user is None:
            if self.session_file.exists():
                self.session_file.unlink()
            return
        saved = PersistedSession(uid=self.current_user.uid, refresh_token=self.current_user.refresh_token)
        tmp = self.session_file.with_name(self.session_file.name + ".tmp")
        tmp.write_text(json.dumps(saved.model_dump(mode="json"), indent=2))
        os.replace(tmp, self.session_file)

    # --- listeners ---------------------------------------------------------

    def on_auth_state_changed(self, callback: Callable[[Optional[AuthUser]], None]) -> Callable[[], None]:
        """Register callback; it fires now with the current identity and on every change."""
        self._listeners.append(callback)
        callback(self.current_user)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_user(self, user: Optional[AuthUser]):
        with self._lock:
            self.current_user = user
            self._save_session()
        for listener in list(self._listeners):
            listener(user)

    # --- sign-in -----------------------------------------------------------

    def _post(self, url: str, **kwargs) -> dict:
        resp = self.http.post(url, params={"key": self.api_key}, **kwargs)
        resp.raise_for_status()
        return resp.json()

    def sign_in_anonymously(self) -> AuthUser:
        data = self._post(f"{self.toolkit_url}/accounts:signUp", json={"returnSecureToken": True})
        user = AuthUser(
            uid=data["localId"],
            id_token=data["idToken"],
            refresh_token=data["refreshToken"],
            expires_at=_expiry(data.get("expiresIn")),
        )
        self._set_user(user)
        return user

    def sign_in_with_custom_token(self, token: str) -> AuthUser:
        data = self._post(
            f"{self.toolkit_url}/accounts:signInWithCustomToken",
            json={"token": token, "returnSecureToken": True},
        )
        # the response carries no localId; the uid lives in the id token claims
        claims = jwt.decode(data["idToken"], verify=False)
        user = AuthUser(
            uid=claims.get("user_id") or claims["sub"],
            id_token=data["idToken"],
            refresh_token=data["refreshToken"],
            expires_at=_expiry(data.get("expiresIn")),
        )
        self._set_user(user)
        return user

    def _refresh_token(self, refresh_token: str, uid: str) -> AuthUser:
        data = self._post(
            self.token_url,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return AuthUser(
            uid=data.get("user_id") or uid,
            id_token=data["id_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=_expiry(data.get("expires_in")),
        )

    def refresh(self) -> AuthUser:
        """Exchange the refresh token for a fresh id token (same uid, no listener call)."""
        with self._lock:
            user = self.current_user
            if user is None:
                raise AuthenticationFailed("No signed-in user to refresh.")
            self.current_user = self._refresh_token(user.refresh_token, user.uid)
            self._save_session()
            return self.current_user


class SessionInitializer:
    """
    Establishes the session identity once at startup.

    All failures are terminal: the phase moves to failed, the error is set on
    the state and the user has to reload to try again.
    """

    def __init__(self, ctx, provider_factory, store_factory):
        self.ctx = ctx
        self.provider_factory = provider_factory
        self.store_factory = store_factory
        self._stop_listening: Optional[Callable[[], None]] = None

    async def start(self):
        ctx = self.ctx
        settings = ctx.settings
        if not settings.firebase_config:
            logger.error("Firebase config is not available.")
            self._fail(ConfigurationMissing())
            return

        try:
            ctx.identity = self.provider_factory(settings)
            ctx.store = self.store_factory(settings, ctx.identity)
        except Exception:
            logger.exception("Firebase initialization error")
            self._fail(ConfigurationMissing("Could not initialize the application. Please check the logs."))
            return

        try:
            await ctx.run_blocking(ctx.identity.set_persistence, settings.session_file)
        except Exception:
            logger.exception("Error setting auth persistence")
            self._fail(AuthenticationFailed("Could not initialize session. Please try again."))
            return

        ctx.state.phase = SessionPhase.AWAITING_IDENTITY
        self._stop_listening = ctx.identity.on_auth_state_changed(ctx.identity_changed)

    async def handle_identity(self, user: Optional[AuthUser]) -> bool:
        """Apply one identity change. Returns True when the session just became ready."""
        state = self.ctx.state
        if state.phase == SessionPhase.FAILED:
            return False

        if user is not None:
            became_ready = state.phase != SessionPhase.READY or state.user_id != user.uid
            state.user_id = user.uid
            state.phase = SessionPhase.READY
            state.auth_ready = True
            logger.info("User is signed in with UID: %s", user.uid)
            return became_ready

        logger.info("User is signed out. Attempting to sign in...")
        identity = self.ctx.identity
        token = self.ctx.settings.initial_auth_token
        try:
            if token:
                await self.ctx.run_blocking(identity.sign_in_with_custom_token, token)
            else:
                await self.ctx.run_blocking(identity.sign_in_anonymously)
        except Exception:
            logger.exception("Error during sign-in")
            self._fail(AuthenticationFailed())
        return False

    def _fail(self, exc: LaterLinkError):
        state = self.ctx.state
        state.phase = SessionPhase.FAILED
        state.set_error(exc.message, exc.kind)
        state.links_loading = False
        state.auth_ready = True

    def close(self):
        if self._stop_listening is not None:
            self._stop_listening()
            self._stop_listening = None
