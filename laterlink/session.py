"""
The session context threaded through the network-facing components, and
the single message loop that applies identity changes and store snapshots
to the session state in arrival order.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .auth import AuthUser, FirebaseIdentityProvider, SessionInitializer
from .errors import LaterLinkError
from .models import AppState
from .storage import FirestoreDocumentStore, LinkStore
from .summarizer import GeminiClient, SummaryRequester

logger = logging.getLogger(__name__)


@dataclass
class IdentityChanged:
    user: Optional[AuthUser]


@dataclass
class SnapshotReceived:
    rows: List[Dict[str, Any]]


@dataclass
class SubscriptionError:
    error: BaseException


class SessionContext:
    """Config, store handle, identity and ephemeral state for one session."""

    def __init__(self, settings, state: Optional[AppState] = None):
        self.settings = settings
        self.state = state or AppState()
        self.identity = None
        self.store = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.messages: Optional[asyncio.Queue] = None

    def bind(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.messages = asyncio.Queue()

    def post(self, message):
        """Queue a message for the session loop; safe to call from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self.messages.put_nowait(message)
        else:
            self.loop.call_soon_threadsafe(self.messages.put_nowait, message)

    def identity_changed(self, user: Optional[AuthUser]):
        self.post(IdentityChanged(user))

    def snapshot_received(self, rows: List[Dict[str, Any]]):
        self.post(SnapshotReceived(rows))

    def subscription_failed(self, error: BaseException):
        self.post(SubscriptionError(error))

    async def run_blocking(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    def report(self, exc: LaterLinkError):
        logger.info("Reporting %s: %s", exc.kind.value, exc.message)
        self.state.set_error(exc.message, exc.kind)


class Session:
    def __init__(
        self,
        settings,
        provider_factory=FirebaseIdentityProvider.from_settings,
        store_factory=FirestoreDocumentStore.from_settings,
        gemini: Optional[GeminiClient] = None,
    ):
        self.ctx = SessionContext(settings)
        self.initializer = SessionInitializer(self.ctx, provider_factory, store_factory)
        self.links = LinkStore(self.ctx)
        if gemini is None:
            gemini = GeminiClient(settings.gemini_api_key, settings.gemini_model)
        self.summaries = SummaryRequester(self.ctx, self.links, gemini)
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def state(self) -> AppState:
        return self.ctx.state

    async def start(self):
        self.ctx.bind(asyncio.get_running_loop())
        self._worker = asyncio.create_task(self._message_loop())
        await self.initializer.start()

    async def _message_loop(self):
        while True:
            message = await self.ctx.messages.get()
            try:
                await self.dispatch(message)
            except Exception:
                logger.exception("Failed to apply %s", type(message).__name__)
            finally:
                self.ctx.messages.task_done()

    async def dispatch(self, message):
        if isinstance(message, IdentityChanged):
            if await self.initializer.handle_identity(message.user):
                await self.links.subscribe()
        elif isinstance(message, SnapshotReceived):
            self.links.apply_snapshot(message.rows)
        elif isinstance(message, SubscriptionError):
            self.links.apply_error(message.error)

    async def close(self):
        if self._closed:
            return
        self._closed = True
        self.links.unsubscribe()
        self.initializer.close()
        if self._worker:
            self._worker.cancel()
