import logging
from typing import Any, Callable, Dict, List, Optional

import google.auth.credentials
from google.cloud import firestore

from .errors import NotReady, SubscriptionFailed, ValidationFailed, WriteFailed
from .models import AddLinkForm, Link
from .youtube_utils import extract_video_id

logger = logging.getLogger(__name__)

LINKS_COLLECTION = "links"
ORDER_FIELD = "addedAt"

# store-assigned timestamp sentinel for addedAt
SERVER_TIMESTAMP = firestore.SERVER_TIMESTAMP


class FirebaseUserCredentials(google.auth.credentials.Credentials):
    """Bearer credentials backed by the signed-in user's Firebase id token."""

    def __init__(self, identity):
        super().__init__()
        self._identity = identity
        user = identity.current_user
        if user is not None:
            self.token = user.id_token
            self.expiry = user.expires_at

    def refresh(self, request):
        user = self._identity.refresh()
        self.token = user.id_token
        self.expiry = user.expires_at


class FirestoreDocumentStore:
    """
    Thin handle over a Cloud Firestore client.

    Collection paths are slash-separated strings. Writes are single
    independent calls; there are no transactions.
    """

    def __init__(self, client: firestore.Client):
        self.client = client

    @classmethod
    def from_settings(cls, settings, identity) -> "FirestoreDocumentStore":
        credentials = FirebaseUserCredentials(identity)
        return cls(firestore.Client(project=settings.project_id, credentials=credentials))

    def add(self, path: str, data: Dict[str, Any]) -> str:
        _, ref = self.client.collection(path).add(data)
        return ref.id

    def delete(self, path: str, doc_id: str):
        self.client.collection(path).document(doc_id).delete()

    def update(self, path: str, doc_id: str, fields: Dict[str, Any]):
        self.client.collection(path).document(doc_id).update(fields)

    @staticmethod
    def _rows(docs) -> List[Dict[str, Any]]:
        return [dict(doc.to_dict() or {}, id=doc.id) for doc in docs]

    def listen(
        self,
        path: str,
        order_by: str,
        on_snapshot: Callable[[List[Dict[str, Any]]], None],
        on_error: Callable[[BaseException], None],
    ) -> Callable[[], None]:
        """
        Deliver the query result now and again on every change, newest
        first. Returns the function that stops listening.
        """
        query = self.client.collection(path).order_by(order_by, direction=firestore.Query.DESCENDING)
        # the watch stream has no error callback, so load once up front to surface failures
        try:
            first = query.get()
        except Exception as e:
            on_error(e)
            return lambda: None
        on_snapshot(self._rows(first))

        def callback(docs, changes, read_time):
            on_snapshot(self._rows(docs))

        watch = query.on_snapshot(callback)
        return watch.unsubscribe


class LinkStore:
    """Per-user link collection: subscribe, add, delete, update summary."""

    def __init__(self, ctx):
        self.ctx = ctx
        self._unsubscribe: Optional[Callable[[], None]] = None

    def collection_path(self) -> str:
        ctx = self.ctx
        if ctx.store is None or not ctx.state.user_id:
            raise NotReady()
        return f"artifacts/{ctx.settings.app_id}/users/{ctx.state.user_id}/{LINKS_COLLECTION}"

    # --- subscription ------------------------------------------------------

    async def subscribe(self) -> bool:
        ctx = self.ctx
        state = ctx.state
        try:
            path = self.collection_path()
        except NotReady as e:
            ctx.report(e)
            return False

        self.unsubscribe()
        state.links_loading = True
        try:
            self._unsubscribe = await ctx.run_blocking(
                ctx.store.listen, path, ORDER_FIELD, ctx.snapshot_received, ctx.subscription_failed
            )
        except Exception:
            logger.exception("Error opening links subscription")
            ctx.report(SubscriptionFailed())
            state.links_loading = False
            return False
        return True

    def unsubscribe(self):
        if self._unsubscribe is not None:
            stop, self._unsubscribe = self._unsubscribe, None
            stop()

    def apply_snapshot(self, rows: List[Dict[str, Any]]):
        state = self.ctx.state
        links = []
        for row in rows:
            try:
                links.append(Link.model_validate(row))
            except ValueError as e:
                logger.warning("Skipping malformed link document %s: %s", row.get("id"), e)
        state.links = links

        live_ids = {link.id for link in links}
        for link_id in list(state.link_ui):
            if link_id not in live_ids and not state.link_ui[link_id].summarizing:
                del state.link_ui[link_id]
        for link in links:
            if link.summary:
                ui = state.ui_for(link.id)
                if not ui.summarizing:
                    ui.summary = link.summary

        state.links_loading = False
        state.clear_error()

    def apply_error(self, error: BaseException):
        logger.error("Error fetching links: %s", error)
        self.ctx.report(SubscriptionFailed())
        self.ctx.state.links_loading = False

    # --- writes ------------------------------------------------------------

    async def add(self, url: str, title: str) -> Optional[str]:
        ctx = self.ctx
        state = ctx.state
        state.form.url = url
        state.form.title = title
        url = url.strip()
        title = title.strip()
        if not url or not title:
            ctx.report(ValidationFailed())
            return None
        try:
            path = self.collection_path()
        except NotReady as e:
            ctx.report(e)
            return None
        video_id = extract_video_id(url)
        if not video_id:
            ctx.report(ValidationFailed("Invalid YouTube URL. Please enter a valid YouTube video link."))
            return None

        state.clear_error()
        doc = {
            "url": url,
            "title": title,
            "videoId": video_id,
            "addedAt": SERVER_TIMESTAMP,
            "userId": state.user_id,
            "summary": None,
        }
        try:
            doc_id = await ctx.run_blocking(ctx.store.add, path, doc)
        except Exception:
            logger.exception("Error adding link")
            ctx.report(WriteFailed("Failed to add link. Please try again."))
            return None
        state.form = AddLinkForm()
        return doc_id

    async def delete(self, link_id: str) -> bool:
        ctx = self.ctx
        try:
            path = self.collection_path()
        except NotReady as e:
            ctx.report(e)
            return False
        ctx.state.clear_error()
        try:
            await ctx.run_blocking(ctx.store.delete, path, link_id)
        except Exception:
            logger.exception("Error deleting link %s", link_id)
            ctx.report(WriteFailed("Failed to delete link. Please try again."))
            return False
        ctx.state.link_ui.pop(link_id, None)
        return True

    async def update_summary(self, link_id: str, summary: str):
        """Persist the summary field only. Raises WriteFailed; the caller decides what the user sees."""
        path = self.collection_path()
        try:
            await self.ctx.run_blocking(self.ctx.store.update, path, link_id, {"summary": summary})
        except Exception as e:
            raise WriteFailed("Failed to save summary.") from e
