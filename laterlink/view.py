"""
Server-side rendering of the single page.

Everything here is a pure function of AppState: no I/O, no mutation.
"""

from datetime import datetime
from enum import Enum
from html import escape
from typing import Optional

from .models import AppState, Link, LinkUiState, SessionPhase
from .summarizer import is_settled_summary
from .youtube_utils import embed_url

APP_TITLE = "LaterLink Saver"
REFRESH_SECONDS = 2


class Condition(str, Enum):
    INITIALIZING = "initializing"
    AUTH_FAILED = "auth-failed"
    EMPTY = "empty"
    POPULATED = "populated"


def page_condition(state: AppState) -> Condition:
    if state.phase == SessionPhase.FAILED:
        return Condition.AUTH_FAILED
    if state.phase != SessionPhase.READY or state.links_loading:
        return Condition.INITIALIZING
    if not state.links:
        return Condition.EMPTY
    return Condition.POPULATED


def format_added_at(added_at: Optional[datetime]) -> str:
    # still pending on the store side
    if added_at is None:
        return "Recently"
    return added_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def summary_label(ui: Optional[LinkUiState]) -> str:
    if ui is not None and ui.summarizing:
        return "Getting Summary..."
    if ui is not None and is_settled_summary(ui.summary):
        return "Regenerate Summary"
    return "Get Summary"


def needs_refresh(state: AppState) -> bool:
    if state.phase in (SessionPhase.UNINITIALIZED, SessionPhase.AWAITING_IDENTITY):
        return True
    if state.phase == SessionPhase.READY and state.links_loading:
        return True
    return any(ui.summarizing for ui in state.link_ui.values())


CSS = """
* { box-sizing: border-box; margin: 0; padding: 0; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       background: #0f172a; color: #e2e8f0; line-height: 1.5; padding: 24px; }
header { text-align: center; margin-bottom: 24px; }
h1 { color: #38bdf8; font-size: 40px; }
.muted { color: #64748b; font-size: 12px; }
.banner { max-width: 480px; margin: 0 auto 24px; background: #7f1d1d55; border: 1px solid #b91c1c;
          color: #fca5a5; padding: 12px 16px; border-radius: 8px; }
.panel { max-width: 480px; margin: 24px auto; text-align: center; background: #1e293b;
         padding: 24px; border-radius: 12px; color: #94a3b8; }
.panel.failed { background: #7f1d1d4d; color: #f87171; }
form.add { max-width: 480px; margin: 0 auto 24px; background: #1e293b; padding: 24px; border-radius: 12px; }
label { display: block; color: #7dd3fc; font-size: 14px; margin-bottom: 6px; }
input { width: 100%; padding: 10px; margin-bottom: 16px; background: #334155; color: #fff;
        border: 1px solid #475569; border-radius: 8px; }
button { padding: 10px 16px; border: 0; border-radius: 8px; color: #fff; cursor: pointer; background: #0ea5e9; }
button:disabled { opacity: .6; cursor: default; }
button.save { background: #22c55e; } button.cancel { background: #475569; }
button.summary { background: #9333ea; width: 100%; } button.delete { background: #dc2626; width: 100%; }
.center { text-align: center; margin-bottom: 24px; }
.grid { max-width: 1100px; margin: 0 auto; display: grid; grid-template-columns: repeat(auto-fill, minmax(320px, 1fr)); gap: 24px; }
.card { background: #1e293b; border-radius: 12px; overflow: hidden; display: flex; flex-direction: column; }
.card iframe { width: 100%; aspect-ratio: 16 / 9; border: 0; }
.card .body { padding: 16px; display: flex; flex-direction: column; gap: 8px; flex-grow: 1; }
.card h3 { color: #38bdf8; white-space: nowrap; overflow: hidden; text-overflow: ellipsis; }
.card a { color: #94a3b8; font-size: 12px; word-break: break-all; }
.summary-text { border-top: 1px solid #334155; padding-top: 8px; font-size: 14px; color: #cbd5e1; }
.summary-text strong { color: #38bdf8; display: block; }
"""


def render_error_banner(state: AppState) -> str:
    if not state.error:
        return ""
    return f'<div class="banner" role="alert"><strong>Error: </strong>{escape(state.error)}</div>'


def render_add_form(state: AppState) -> str:
    if state.phase != SessionPhase.READY:
        return ""
    form = state.form
    if not form.open:
        return (
            '<div class="center"><form method="post" action="/form/open">'
            '<button type="submit">+ Add New Link</button></form></div>'
        )
    return f"""<form class="add" method="post" action="/links">
  <label for="linkUrl">YouTube Link URL</label>
  <input type="url" id="linkUrl" name="url" value="{escape(form.url)}"
         placeholder="e.g., https://www.youtube.com/watch?v=dQw4w9WgXcQ" required>
  <label for="linkTitle">Custom Title</label>
  <input type="text" id="linkTitle" name="title" value="{escape(form.title)}"
         placeholder="e.g., My Awesome Video" required>
  <button type="submit" class="save">Save Link</button>
  <button type="submit" class="cancel" formaction="/form/close" formnovalidate>Cancel</button>
</form>"""


def render_card(link: Link, ui: Optional[LinkUiState]) -> str:
    link_id = escape(link.id)
    summarizing = ui is not None and ui.summarizing
    summary_block = ""
    if ui is not None and ui.summary:
        summary_block = f'<div class="summary-text"><strong>Summary:</strong>{escape(ui.summary)}</div>'
    busy = " disabled" if summarizing else ""
    return f"""<div class="card" id="link-{link_id}">
  <iframe src="{escape(embed_url(link.video_id))}" title="{escape(link.title)}"
          allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture" allowfullscreen></iframe>
  <div class="body">
    <h3 title="{escape(link.title)}">{escape(link.title)}</h3>
    <a href="{escape(link.url)}" target="_blank" rel="noopener noreferrer">{escape(link.url)}</a>
    <p class="muted">Added: {escape(format_added_at(link.added_at))}</p>
    {summary_block}
    <form method="post" action="/links/{link_id}/summary">
      <button type="submit" class="summary"{busy}>✨ {summary_label(ui)}</button>
    </form>
    <form method="post" action="/links/{link_id}/delete">
      <button type="submit" class="delete"{busy}>Delete</button>
    </form>
  </div>
</div>"""


def render_body(state: AppState) -> str:
    condition = page_condition(state)
    if condition == Condition.INITIALIZING:
        text = "Loading links..." if state.auth_ready else "Initializing App..."
        return f'<div class="panel">{text}</div>'
    if condition == Condition.AUTH_FAILED:
        return (
            '<div class="panel failed"><p>Authentication Problem</p>'
            "<p>Could not authenticate. Your links cannot be loaded or saved.</p>"
            "<p>Please check your internet connection or try refreshing the page.</p></div>"
        )
    if condition == Condition.EMPTY:
        return (
            '<div class="panel"><p>No links saved yet.</p>'
            '<p>Click "Add New Link" to get started!</p></div>'
        )
    cards = "\n".join(render_card(link, state.link_ui.get(link.id)) for link in state.links)
    return f'<div class="grid">{cards}</div>'


def render_page(state: AppState) -> str:
    refresh = f'<meta http-equiv="refresh" content="{REFRESH_SECONDS}">' if needs_refresh(state) else ""
    user_line = f'<p class="muted">User ID: {escape(state.user_id)}</p>' if state.user_id else ""
    return f"""<!DOCTYPE html>
<html lang="en"><head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1">
{refresh}<title>{APP_TITLE}</title><style>{CSS}</style></head><body>
<header><h1>{APP_TITLE}</h1><p class="muted">Save YouTube links and ✨ get quick summaries!</p>{user_line}</header>
{render_error_banner(state)}
{render_add_form(state)}
{render_body(state)}
</body></html>"""
