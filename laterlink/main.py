from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, RedirectResponse

from .config import configure_logging, load_settings
from .errors import STATUS_CODES, ErrorKind
from .models import AppState, Link, LinkIn
from .session import Session
from .view import render_page


def _find_link(state: AppState, link_id: str) -> Link:
    link = next((l for l in state.links if l.id == link_id), None)
    if not link:
        raise HTTPException(404, "Link not found")
    return link


def _raise_from_state(state: AppState):
    kind = state.error_kind or ErrorKind.WRITE
    raise HTTPException(STATUS_CODES[kind], state.error or "Request failed")


def _back_home() -> RedirectResponse:
    return RedirectResponse(url="/", status_code=303)


def create_app(session: Session) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await session.start()
        yield
        await session.close()

    app = FastAPI(title="LaterLink", lifespan=lifespan)
    app.state.session = session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- page ---------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    def serve_index():
        return HTMLResponse(render_page(session.state))

    @app.post("/form/open")
    def open_form():
        session.state.form.open = True
        return _back_home()

    @app.post("/form/close")
    def close_form():
        session.state.form.open = False
        return _back_home()

    @app.post("/links")
    async def add_link_form(url: str = Form(""), title: str = Form("")):
        await session.links.add(url, title)
        return _back_home()

    @app.post("/links/{link_id}/delete")
    async def delete_link_form(link_id: str):
        await session.links.delete(link_id)
        return _back_home()

    @app.post("/links/{link_id}/summary")
    async def summarize_link_form(link_id: str):
        link = _find_link(session.state, link_id)
        session.summaries.trigger(link.id, link.title, link.url)
        return _back_home()

    # --- JSON API -----------------------------------------------------------

    @app.get("/api/state")
    def get_state():
        return session.state

    @app.post("/api/links", status_code=201)
    async def add_link(body: LinkIn):
        link_id: Optional[str] = await session.links.add(body.url, body.title)
        if link_id is None:
            _raise_from_state(session.state)
        return {"id": link_id}

    @app.delete("/api/links/{link_id}")
    async def delete_link(link_id: str):
        if not await session.links.delete(link_id):
            _raise_from_state(session.state)
        return {"ok": True}

    @app.post("/api/links/{link_id}/summary")
    async def summarize_link(link_id: str):
        link = _find_link(session.state, link_id)
        task = session.summaries.trigger(link.id, link.title, link.url)
        if task is not None:
            await task
        ui = session.state.link_ui.get(link.id)
        return {"id": link.id, "summary": ui.summary if ui else None, "summarizing": bool(ui and ui.summarizing)}

    return app


settings = load_settings()
configure_logging(settings.log_level)
app = create_app(Session(settings))
