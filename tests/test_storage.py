import unittest
from datetime import datetime, timezone

from fakes import InMemoryDocumentStore, links_path, make_session, make_settings, settle
from laterlink.errors import ErrorKind
from laterlink.models import LinkUiState
from laterlink.session import SessionContext
from laterlink.storage import SERVER_TIMESTAMP, LinkStore

VALID_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class LinkStoreTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.store = InMemoryDocumentStore()
        self.session = make_session(store=self.store)
        await self.session.start()
        await settle(self.session)
        self.state = self.session.state
        self.links = self.session.links

    async def asyncTearDown(self):
        await self.session.close()

    def store_writes(self):
        return [c for c in self.store.calls if c[0] != "listen"]


class TestAddLink(LinkStoreTestCase):

    async def test_empty_title_is_rejected_locally(self):
        self.state.form.open = True
        result = await self.links.add(VALID_URL, "   ")

        self.assertIsNone(result)
        self.assertEqual(self.state.error, "Both URL and Title are required.")
        self.assertEqual(self.state.error_kind, ErrorKind.VALIDATION)
        self.assertEqual(self.store_writes(), [])
        self.assertTrue(self.state.form.open)
        self.assertEqual(self.state.form.url, VALID_URL)

    async def test_empty_url_is_rejected_locally(self):
        self.assertIsNone(await self.links.add("", "A title"))
        self.assertEqual(self.store_writes(), [])

    async def test_invalid_youtube_url_is_rejected_locally(self):
        self.assertIsNone(await self.links.add("https://example.com/video", "A title"))
        self.assertEqual(self.state.error, "Invalid YouTube URL. Please enter a valid YouTube video link.")
        self.assertEqual(self.store_writes(), [])

    async def test_successful_add_writes_document_and_resets_form(self):
        self.state.form.open = True
        doc_id = await self.links.add(VALID_URL, "Never Gonna")
        await settle(self.session)

        self.assertEqual(doc_id, "doc1")
        op, path, data = self.store_writes()[0]
        self.assertEqual(op, "add")
        self.assertEqual(path, links_path())
        self.assertEqual(data["videoId"], "dQw4w9WgXcQ")
        self.assertEqual(data["userId"], "user-1")
        self.assertIs(data["addedAt"], SERVER_TIMESTAMP)
        self.assertIsNone(data["summary"])

        self.assertFalse(self.state.form.open)
        self.assertEqual(self.state.form.url, "")
        self.assertEqual(self.state.form.title, "")
        self.assertEqual([l.id for l in self.state.links], ["doc1"])
        self.assertEqual(self.state.links[0].video_id, "dQw4w9WgXcQ")

    async def test_remote_failure_keeps_form_populated(self):
        self.store.fail_on.add("add")
        self.state.form.open = True
        self.assertIsNone(await self.links.add(VALID_URL, "Never Gonna"))

        self.assertEqual(self.state.error, "Failed to add link. Please try again.")
        self.assertEqual(self.state.error_kind, ErrorKind.WRITE)
        self.assertTrue(self.state.form.open)
        self.assertEqual(self.state.form.title, "Never Gonna")


class TestDeleteLink(LinkStoreTestCase):

    async def test_delete_drops_cached_summary_state(self):
        doc_id = await self.links.add(VALID_URL, "Never Gonna")
        await settle(self.session)
        self.state.link_ui[doc_id] = LinkUiState(summary="cached", summarizing=False)

        self.assertTrue(await self.links.delete(doc_id))
        await settle(self.session)

        self.assertNotIn(doc_id, self.state.link_ui)
        self.assertEqual(self.state.links, [])

    async def test_delete_failure_keeps_state(self):
        doc_id = await self.links.add(VALID_URL, "Never Gonna")
        await settle(self.session)
        self.state.link_ui[doc_id] = LinkUiState(summary="cached")
        self.store.fail_on.add("delete")

        self.assertFalse(await self.links.delete(doc_id))
        self.assertEqual(self.state.error, "Failed to delete link. Please try again.")
        self.assertIn(doc_id, self.state.link_ui)


class TestSubscription(LinkStoreTestCase):

    async def test_snapshot_order_is_kept_as_delivered(self):
        rows = [
            {"id": "b", "url": VALID_URL, "title": "B", "videoId": "dQw4w9WgXcQ",
             "addedAt": datetime(2024, 1, 1, tzinfo=timezone.utc), "userId": "user-1"},
            {"id": "a", "url": VALID_URL, "title": "A", "videoId": "dQw4w9WgXcQ",
             "addedAt": datetime(2024, 6, 1, tzinfo=timezone.utc), "userId": "user-1"},
        ]
        self.links.apply_snapshot(rows)
        self.assertEqual([l.id for l in self.state.links], ["b", "a"])

    async def test_snapshot_merges_persisted_summaries(self):
        self.links.apply_snapshot([
            {"id": "a", "url": VALID_URL, "title": "A", "videoId": "dQw4w9WgXcQ",
             "addedAt": None, "userId": "user-1", "summary": "Stored summary"},
        ])
        self.assertEqual(self.state.link_ui["a"].summary, "Stored summary")
        self.assertIsNone(self.state.links[0].added_at)

    async def test_snapshot_does_not_clobber_in_flight_summary(self):
        self.state.link_ui["a"] = LinkUiState(summary="✨ Generating summary...", summarizing=True)
        self.links.apply_snapshot([
            {"id": "a", "url": VALID_URL, "title": "A", "videoId": "dQw4w9WgXcQ",
             "userId": "user-1", "summary": "Old"},
        ])
        self.assertEqual(self.state.link_ui["a"].summary, "✨ Generating summary...")

    async def test_snapshot_prunes_state_for_vanished_links(self):
        self.state.link_ui["gone"] = LinkUiState(summary="x")
        self.state.link_ui["busy"] = LinkUiState(summarizing=True)
        self.links.apply_snapshot([])
        self.assertNotIn("gone", self.state.link_ui)
        self.assertIn("busy", self.state.link_ui)

    async def test_malformed_document_is_skipped(self):
        self.links.apply_snapshot([
            {"id": "bad", "title": "No url"},
            {"id": "ok", "url": VALID_URL, "title": "A", "videoId": "dQw4w9WgXcQ", "userId": "user-1"},
        ])
        self.assertEqual([l.id for l in self.state.links], ["ok"])

    async def test_transport_error_surfaces_load_failure(self):
        self.state.links_loading = True
        self.store.fail_listeners(links_path(), RuntimeError("stream reset"))
        await settle(self.session)

        self.assertEqual(
            self.state.error,
            "Failed to load links. Please check your connection or try again later.",
        )
        self.assertEqual(self.state.error_kind, ErrorKind.SUBSCRIPTION)
        self.assertFalse(self.state.links_loading)

    async def test_listen_error_at_open(self):
        store = InMemoryDocumentStore(listen_error=RuntimeError("permission denied"))
        session = make_session(store=store)
        await session.start()
        await settle(session)

        self.assertEqual(session.state.error_kind, ErrorKind.SUBSCRIPTION)
        self.assertFalse(session.state.links_loading)
        await session.close()


class TestNotReady(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.store = InMemoryDocumentStore()
        self.ctx = SessionContext(make_settings())
        self.links = LinkStore(self.ctx)

    async def test_operations_refused_without_store(self):
        self.ctx.state.user_id = "user-1"
        self.assertIsNone(await self.links.add(VALID_URL, "Title"))
        self.assertEqual(self.ctx.state.error, "Database not ready or user not authenticated.")
        self.assertEqual(self.ctx.state.error_kind, ErrorKind.NOT_READY)

    async def test_operations_refused_without_user(self):
        self.ctx.store = self.store
        self.assertFalse(await self.links.delete("doc1"))
        self.assertFalse(await self.links.subscribe())
        self.assertEqual(self.store.calls, [])


if __name__ == "__main__":
    unittest.main()
