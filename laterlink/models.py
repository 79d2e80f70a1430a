from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorKind


class Link(BaseModel):
    """A saved YouTube link as delivered by the store."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    title: str
    video_id: str = Field(alias="videoId")
    added_at: Optional[datetime] = Field(default=None, alias="addedAt")
    user_id: str = Field(alias="userId")
    summary: Optional[str] = None


class LinkIn(BaseModel):
    url: str = ""
    title: str = ""


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_IDENTITY = "awaiting-identity"
    READY = "ready"
    FAILED = "failed"


class LinkUiState(BaseModel):
    summary: Optional[str] = None
    summarizing: bool = False


class AddLinkForm(BaseModel):
    open: bool = False
    url: str = ""
    title: str = ""


class AppState(BaseModel):
    """Ephemeral, process-lifetime state rendered by the view."""

    phase: SessionPhase = SessionPhase.UNINITIALIZED
    auth_ready: bool = False
    user_id: Optional[str] = None
    links: List[Link] = Field(default_factory=list)
    links_loading: bool = True
    link_ui: Dict[str, LinkUiState] = Field(default_factory=dict)
    error: str = ""
    error_kind: Optional[ErrorKind] = None
    form: AddLinkForm = Field(default_factory=AddLinkForm)

    def ui_for(self, link_id: str) -> LinkUiState:
        ui = self.link_ui.get(link_id)
        if ui is None:
            ui = self.link_ui[link_id] = LinkUiState()
        return ui

    def set_error(self, message: str, kind: Optional[ErrorKind] = None):
        self.error = message
        self.error_kind = kind

    def clear_error(self):
        self.error = ""
        self.error_kind = None
