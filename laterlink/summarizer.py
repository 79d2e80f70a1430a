"""
Speculative one-to-two sentence summaries from the Gemini REST API.

The model never sees the video itself, only the user's title and the URL.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from .errors import GenerationFailed, LaterLinkError, NotReady

logger = logging.getLogger(__name__)

GENERATE_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

PLACEHOLDER = "✨ Generating summary..."
ERROR_PREFIX = "Error:"
UNEXPECTED_RESPONSE = "Could not generate summary (unexpected response)."

PROMPT_TEMPLATE = (
    "Based on the title and URL, provide a concise, one to two-sentence speculative summary "
    'of what the YouTube video titled "{title}" (URL: {url}) might be about. '
    "Focus on the likely main topic or purpose. If you cannot make a reasonable inference, say so."
)


def build_prompt(title: str, url: str) -> str:
    return PROMPT_TEMPLATE.format(title=title, url=url)


def extract_summary_text(result: Any) -> Optional[str]:
    """First text part of the first candidate, or None when the payload is not shaped that way."""
    try:
        parts = result["candidates"][0]["content"]["parts"]
        text = parts[0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str):
        return None
    return text


def is_settled_summary(text: Optional[str]) -> bool:
    """A summary that came back from the model, as opposed to a placeholder or an error."""
    return bool(text) and text != PLACEHOLDER and not text.startswith(ERROR_PREFIX)


class GeminiClient:
    def __init__(self, api_key: str, model: str, http=None):
        self.api_key = api_key
        self.model = model
        self.http = http or requests.Session()

    def generate(self, prompt: str) -> Dict[str, Any]:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        resp = self.http.post(
            GENERATE_ENDPOINT.format(model=self.model),
            params={"key": self.api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        if not resp.ok:
            try:
                error_data = resp.json()
            except ValueError:
                error_data = {}
            logger.error("Gemini API error response: %s", error_data)
            error = error_data.get("error") if isinstance(error_data, dict) else None
            message = (error or {}).get("message") or "Unknown error"
            raise GenerationFailed(f"API request failed with status {resp.status_code}: {message}")
        return resp.json()


class SummaryRequester:
    def __init__(self, ctx, link_store, client: GeminiClient):
        self.ctx = ctx
        self.link_store = link_store
        self.client = client
        # the loop only keeps weak references to running tasks
        self._tasks = set()

    def trigger(self, link_id: str, title: str, url: str) -> Optional[asyncio.Task]:
        """
        Mark the link as summarizing and start the request in the background.
        Returns None when the request was refused or one is already running.
        """
        ctx = self.ctx
        if ctx.store is None or not ctx.state.user_id:
            ctx.report(NotReady("Database not ready or user not authenticated for summary."))
            return None
        ui = ctx.state.ui_for(link_id)
        if ui.summarizing:
            return None
        ui.summarizing = True
        ui.summary = PLACEHOLDER
        task = asyncio.create_task(self._run(ui, link_id, title, url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def request(self, link_id: str, title: str, url: str) -> Optional[str]:
        task = self.trigger(link_id, title, url)
        if task is None:
            return None
        return await task

    async def _run(self, ui, link_id: str, title: str, url: str) -> Optional[str]:
        try:
            try:
                result = await self.ctx.run_blocking(self.client.generate, build_prompt(title, url))
            except GenerationFailed as e:
                ui.summary = f"{ERROR_PREFIX} {e.message}"
                return None
            except (requests.RequestException, ValueError) as e:
                logger.error("Error calling Gemini API: %s", e)
                ui.summary = f"{ERROR_PREFIX} {str(e) or GenerationFailed.default_message}"
                return None

            text = extract_summary_text(result)
            if text is None:
                logger.error("Unexpected response structure from Gemini API: %s", result)
                ui.summary = UNEXPECTED_RESPONSE
                return None

            ui.summary = text
            try:
                await self.link_store.update_summary(link_id, text)
            except LaterLinkError:
                # the displayed summary stays even though the stored copy did not change
                logger.exception("Could not save summary for link %s", link_id)
            return text
        finally:
            ui.summarizing = False
            state = self.ctx.state
            if not any(link.id == link_id for link in state.links):
                # deleted while the request ran; the snapshot kept it only for this
                state.link_ui.pop(link_id, None)
