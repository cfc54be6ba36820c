"""
Artifact Store

Where uploaded game builds live. The review workflow only needs two things
from it: the storage prefix for a new version and the public entry URL the
runtime bridge loads.
"""
import re
from typing import Optional

from ..config import ARTIFACT_BASE_URL

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def storage_path_for(game_key: str, version: str) -> str:
    """games/<game_key>/<version>/ with path-traversal characters stripped."""
    if not game_key or not game_key.strip():
        raise ValueError("game_key is required and cannot be empty")
    if not version or not version.strip():
        raise ValueError("version is required and cannot be empty")
    safe_key = _UNSAFE.sub("", game_key.strip()).replace("..", "")
    safe_version = _UNSAFE.sub("", version.strip()).replace("..", "")
    return f"games/{safe_key}/{safe_version}/"


class ArtifactStore:
    """Resolves CDN URLs for stored builds."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or ARTIFACT_BASE_URL).rstrip("/")

    def get_entry_url(self, storage_path: str, entry_file: Optional[str] = None) -> str:
        path = storage_path.strip("/")
        return f"{self.base_url}/{path}/{(entry_file or 'index.html').lstrip('/')}"
