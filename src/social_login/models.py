from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field


_STORAGE_STATE_COOKIE_KEYS = ("name", "value", "domain", "path", "expires", "httpOnly", "secure", "sameSite")


def origin_of(url: str) -> str:
    parsed = urlparse(url or "")
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def _storage_state_cookie(cookie: Dict[str, Any]) -> Dict[str, Any]:
    # CDP cookies carry extra keys (size, session, priority, ...) that Playwright rejects.
    out = {k: cookie[k] for k in _STORAGE_STATE_COOKIE_KEYS if k in cookie and cookie[k] is not None}
    out.setdefault("path", "/")
    out.setdefault("expires", -1)
    out.setdefault("httpOnly", False)
    out.setdefault("secure", False)
    return out


class ExtractionResult(BaseModel):
    """
    Session state read out of the browser after a successful login.
    """

    cookies: List[Dict[str, Any]] = Field(default_factory=list)
    local_storage: Dict[str, str] = Field(default_factory=dict)
    session_storage: Dict[str, str] = Field(default_factory=dict)

    # Origin of the page the storage snapshots were read from.
    origin: str = ""

    def to_storage_state(self, origin: Optional[str] = None) -> Dict[str, Any]:
        """
        Render a Playwright `storage_state` document (cookies + localStorage).

        sessionStorage is not part of Playwright's storage state and is left out.
        """
        origin = origin or self.origin
        origins: List[Dict[str, Any]] = []
        if origin and self.local_storage:
            origins.append(
                {
                    "origin": origin,
                    "localStorage": [{"name": k, "value": v} for k, v in self.local_storage.items()],
                }
            )
        return {
            "cookies": [_storage_state_cookie(c) for c in self.cookies],
            "origins": origins,
        }
