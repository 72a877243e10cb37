"""Best-effort persistence of session state.

Every save returns ``True``/``False`` and every load returns ``None`` on
failure. Storage problems are logged and never raised: the session keeps
working from in-memory state.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from plainness.errors import PersistenceFailure
from plainness.store.db import KeyValueBackend

log = logging.getLogger(__name__)

STORAGE_KEYS: dict[str, str] = {
    "content": "editor_content",
    "chat_history": "chat_history",
    "preferences": "preferences",
    "last_saved": "last_saved",
    "suggestions": "suggestions",
    "versions": "versions",
}

DEFAULT_CHAT_LIMIT = 50


class PersistenceGateway:
    """Typed save/load on top of a key-value backend.

    Parameters
    ----------
    backend:
        Any object with ``get``/``set``/``delete`` raising
        :class:`PersistenceFailure` on error.
    chat_limit:
        Number of most recent chat messages kept on save.
    """

    def __init__(self, backend: KeyValueBackend, chat_limit: int = DEFAULT_CHAT_LIMIT) -> None:
        self._backend = backend
        self._chat_limit = chat_limit

    # ------------------------------------------------------------------
    # Raw helpers
    # ------------------------------------------------------------------

    def _set(self, name: str, value: str) -> bool:
        key = STORAGE_KEYS[name]
        try:
            self._backend.set(key, value)
        except PersistenceFailure as exc:
            log.error("Failed to save %s: %s", name, exc)
            return False
        return True

    def _get(self, name: str) -> str | None:
        key = STORAGE_KEYS[name]
        try:
            return self._backend.get(key)
        except PersistenceFailure as exc:
            log.error("Failed to load %s: %s", name, exc)
            return None

    def _set_json(self, name: str, value: Any) -> bool:
        try:
            blob = json.dumps(value)
        except (TypeError, ValueError) as exc:
            log.error("Failed to encode %s: %s", name, exc)
            return False
        return self._set(name, blob)

    def _get_json(self, name: str) -> Any:
        blob = self._get(name)
        if not blob:
            return None
        try:
            return json.loads(blob)
        except json.JSONDecodeError as exc:
            log.warning("Ignoring corrupt %s blob: %s", name, exc)
            return None

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def save_content(self, content: str) -> bool:
        if not self._set("content", content):
            return False
        self._set("last_saved", datetime.now(timezone.utc).isoformat())
        return True

    def load_content(self) -> str | None:
        return self._get("content") or None

    def get_last_saved(self) -> datetime | None:
        stamp = self._get("last_saved")
        if not stamp:
            return None
        try:
            return datetime.fromisoformat(stamp)
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Chat history
    # ------------------------------------------------------------------

    def save_chat_history(self, history: list[dict[str, str]]) -> bool:
        """Save the most recent ``chat_limit`` messages."""
        return self._set_json("chat_history", list(history)[-self._chat_limit:])

    def load_chat_history(self) -> list[dict[str, str]] | None:
        data = self._get_json("chat_history")
        return data if isinstance(data, list) else None

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def save_preferences(self, prefs: dict[str, Any]) -> bool:
        return self._set_json("preferences", prefs)

    def load_preferences(self) -> dict[str, Any] | None:
        data = self._get_json("preferences")
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Suggestions and versions
    # ------------------------------------------------------------------

    def save_suggestions(self, suggestions: list[dict[str, Any]]) -> bool:
        return self._set_json("suggestions", suggestions)

    def load_suggestions(self) -> list[dict[str, Any]] | None:
        data = self._get_json("suggestions")
        return data if isinstance(data, list) else None

    def save_versions(self, versions: list[dict[str, Any]]) -> bool:
        return self._set_json("versions", versions)

    def load_versions(self) -> list[dict[str, Any]] | None:
        data = self._get_json("versions")
        return data if isinstance(data, list) else None

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    def clear_all(self) -> bool:
        ok = True
        for name, key in STORAGE_KEYS.items():
            try:
                self._backend.delete(key)
            except PersistenceFailure as exc:
                log.error("Failed to clear %s: %s", name, exc)
                ok = False
        return ok

    def export_all(self) -> dict[str, Any]:
        """Return a JSON-serialisable backup of all stored state."""
        return {
            "content": self.load_content(),
            "chat_history": self.load_chat_history(),
            "preferences": self.load_preferences(),
            "versions": self.load_versions(),
            "exported_at": datetime.now(timezone.utc).isoformat(),
        }

    def import_all(self, data: dict[str, Any]) -> bool:
        """Restore a backup produced by :meth:`export_all`.

        Missing or empty sections are skipped. Imported content replaces the
        document wholesale, so stored suggestions are emptied with it.
        """
        if not isinstance(data, dict):
            log.error("Backup must be a mapping, got %s", type(data).__name__)
            return False
        ok = True
        if data.get("content"):
            ok = self.save_content(data["content"]) and ok
            ok = self.save_suggestions([]) and ok
        if data.get("chat_history"):
            ok = self.save_chat_history(data["chat_history"]) and ok
        if data.get("preferences"):
            ok = self.save_preferences(data["preferences"]) and ok
        if data.get("versions"):
            ok = self.save_versions(data["versions"]) and ok
        return ok
