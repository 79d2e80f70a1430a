"""
Runtime configuration supplied by the hosting environment.

Values come from environment variables (a local .env file is loaded first).
A missing or unparseable Firebase configuration blob is a fatal startup
condition, reported by the session initializer rather than raised here.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_APP_ID = "default-laterlink-app"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseModel):
    app_id: str = DEFAULT_APP_ID
    firebase_config: Optional[Dict[str, Any]] = None
    initial_auth_token: Optional[str] = None
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    session_file: Path = Path(".laterlink_session.json")
    auth_emulator_host: Optional[str] = None
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8765

    @property
    def api_key(self) -> str:
        return (self.firebase_config or {}).get("apiKey", "")

    @property
    def project_id(self) -> Optional[str]:
        return (self.firebase_config or {}).get("projectId")


def parse_firebase_config(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.error("Error parsing LATERLINK_FIREBASE_CONFIG: %s", e)
        return None
    if not isinstance(data, dict):
        logger.error("LATERLINK_FIREBASE_CONFIG must be a JSON object")
        return None
    return data


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        app_id=os.getenv("LATERLINK_APP_ID") or DEFAULT_APP_ID,
        firebase_config=parse_firebase_config(os.getenv("LATERLINK_FIREBASE_CONFIG")),
        initial_auth_token=os.getenv("LATERLINK_INITIAL_AUTH_TOKEN") or None,
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("LATERLINK_GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        session_file=Path(os.getenv("LATERLINK_SESSION_FILE", ".laterlink_session.json")),
        auth_emulator_host=os.getenv("FIREBASE_AUTH_EMULATOR_HOST") or None,
        log_level=os.getenv("LATERLINK_LOG_LEVEL", "INFO").upper(),
        host=os.getenv("LATERLINK_HOST", "127.0.0.1"),
        port=int(os.getenv("LATERLINK_PORT", "8765")),
    )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])
