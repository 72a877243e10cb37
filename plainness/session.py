"""Editing session: the single owner of document state.

:class:`EditorSession` holds the current document, the pending suggestion
set, the version ledger, the chat log and preferences. Every component
operation goes through it, and every change is written back through the
persistence gateway on a per-stream debounce.

Only one annotation request (analyze, prepare, chat) may be in flight per
session. Wholesale content replacements bump a generation counter, and a
request that completes after its generation has moved on is discarded.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from plainness.annotate.chunker import count_words
from plainness.annotate.engine import AnnotationEngine, ProgressCallback
from plainness.annotate.suggestions import Segment, Suggestion, SuggestionSet
from plainness.categories import normalize_categories
from plainness.errors import EmptyDocument, PlainnessError, SessionBusy
from plainness.service import CompletionService
from plainness.store.debounce import DebouncedWriter
from plainness.store.gateway import PersistenceGateway
from plainness.store.versions import Version, VersionLedger

log = logging.getLogger(__name__)

WELCOME_MESSAGE: dict[str, str] = {
    "role": "assistant",
    "content": (
        "Welcome to your editorial canvas. I'm here to help you refine your writing.\n\n"
        "**First-pass preparation:** When you bring in new content, run prepare to "
        "automatically:\n"
        "• Convert footnotes to MLA inline citations\n"
        "• Align terminology with the Church Style Guide (August 2018)\n\n"
        "After preparation, choose editorial focus areas and analyze for nuanced "
        "suggestions. Your work auto-saves continuously."
    ),
}

# Debounce streams
CONTENT = "content"
CHAT = "chat_history"
PREFERENCES = "preferences"
SUGGESTIONS = "suggestions"


def _clip(text: str, limit: int = 50) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class EditorSession:
    """Explicit session object for one working document.

    Parameters
    ----------
    config:
        Plainness config dict.
    gateway:
        Persistence gateway; session state is restored from it on init.
    service:
        Text-completion backend used by the annotation engine.
    writer:
        Debounced writer. A private one is created when omitted; call
        :meth:`close` to flush it.
    """

    def __init__(
        self,
        config: dict[str, Any],
        gateway: PersistenceGateway,
        service: CompletionService,
        writer: DebouncedWriter | None = None,
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._engine = AnnotationEngine(service, config)
        self._writer = writer or DebouncedWriter()
        self._ledger = VersionLedger(gateway, config["versions"]["max_versions"])
        self._lock = threading.Lock()
        self._in_flight = False
        self._generation = 0

        persistence = config["persistence"]
        self._delays = {
            CONTENT: persistence["content_delay_ms"] / 1000,
            CHAT: persistence["chat_delay_ms"] / 1000,
            PREFERENCES: persistence["preferences_delay_ms"] / 1000,
            SUGGESTIONS: persistence["content_delay_ms"] / 1000,
        }

        self._document = gateway.load_content() or ""
        self._suggestions = SuggestionSet.from_list(gateway.load_suggestions())
        self._suggestions.revalidate(self._document)
        self._chat: list[dict[str, str]] = gateway.load_chat_history() or [dict(WELCOME_MESSAGE)]

        prefs = gateway.load_preferences() or {}
        active = normalize_categories(prefs.get("active_categories"))
        if not active:
            active = normalize_categories(config["preferences"]["active_categories"])
        self._categories = active

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def document(self) -> str:
        return self._document

    @property
    def suggestions(self) -> list[Suggestion]:
        return list(self._suggestions)

    @property
    def chat_history(self) -> list[dict[str, str]]:
        return list(self._chat)

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    @property
    def busy(self) -> bool:
        return self._in_flight

    @property
    def word_count(self) -> int:
        return count_words(self._document)

    def versions(self) -> list[Version]:
        return self._ledger.versions()

    def render(self) -> list[Segment]:
        return self._suggestions.render_segments(self._document)

    def last_saved(self) -> datetime | None:
        return self._gateway.get_last_saved()

    def export_all(self) -> dict[str, Any]:
        """Flush pending writes and return a backup of everything stored."""
        self.flush()
        return self._gateway.export_all()

    # ------------------------------------------------------------------
    # Persistence scheduling
    # ------------------------------------------------------------------

    def _schedule_content(self) -> None:
        doc = self._document
        self._writer.schedule(CONTENT, self._delays[CONTENT], lambda: self._gateway.save_content(doc))
        self._schedule_suggestions()

    def _schedule_suggestions(self) -> None:
        data = self._suggestions.to_list()
        self._writer.schedule(
            SUGGESTIONS, self._delays[SUGGESTIONS], lambda: self._gateway.save_suggestions(data),
        )

    def _schedule_chat(self) -> None:
        history = list(self._chat)
        self._writer.schedule(CHAT, self._delays[CHAT], lambda: self._gateway.save_chat_history(history))

    def _schedule_preferences(self) -> None:
        prefs = {"active_categories": list(self._categories)}
        self._writer.schedule(
            PREFERENCES, self._delays[PREFERENCES], lambda: self._gateway.save_preferences(prefs),
        )

    def _say(self, content: str) -> None:
        self._chat.append({"role": "assistant", "content": content})
        self._schedule_chat()

    def flush(self) -> None:
        """Write every pending change now."""
        self._writer.flush()

    def close(self) -> None:
        self._writer.stop(flush=True)

    # ------------------------------------------------------------------
    # In-flight guard
    # ------------------------------------------------------------------

    def _begin_request(self) -> int:
        with self._lock:
            if self._in_flight:
                raise SessionBusy("Another request is already in progress")
            self._in_flight = True
            return self._generation

    def _end_request(self) -> None:
        with self._lock:
            self._in_flight = False

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _require_content(self, action: str) -> None:
        if not self._document.strip():
            raise EmptyDocument(f"Please add document content before {action}.")

    # ------------------------------------------------------------------
    # Annotation
    # ------------------------------------------------------------------

    def analyze(self, limit: int | str | None = None) -> list[Suggestion]:
        """Replace the suggestion set with a fresh analysis.

        On failure the previous suggestions and the document are unchanged,
        an explanatory chat message is added and the error re-raised.
        """
        self._require_content("analyzing")
        if not self._categories:
            raise PlainnessError("Select at least one editorial focus area before analyzing.")
        generation = self._begin_request()
        document = self._document
        try:
            found = self._engine.analyze(document, self._categories, limit)
        except PlainnessError as exc:
            log.error("Analysis failed: %s", exc)
            self._say(f"I encountered an issue during analysis: {exc}")
            raise
        finally:
            self._end_request()

        if not self._is_current(generation) or document != self._document:
            log.warning("Discarding analysis result for a document that has since changed")
            return []

        self._suggestions.replace_all(found)
        self._schedule_suggestions()
        if found:
            plural = "s" if len(found) != 1 else ""
            self._say(
                f"Analysis complete. I found {len(found)} suggestion{plural} based on your "
                "selected editorial focus areas. Accept or dismiss each as you see fit."
            )
        else:
            self._say(
                "Analysis complete. The text looks strong for your selected focus areas.\n\n"
                "Would you like to try different focus areas, or discuss specific aspects "
                "of the writing?"
            )
        return found

    def prepare(self, on_progress: ProgressCallback | None = None) -> str:
        """Run the whole-document prepare rewrite.

        The current content is snapshotted into the ledger before anything
        else happens. A failed rewrite leaves the document unchanged.
        """
        self._require_content("preparing")
        generation = self._begin_request()
        document = self._document
        self._ledger.save_version(document, "Before preparation")
        self._say(
            "⏳ Preparing document: Converting footnotes to MLA inline citations and "
            "aligning terminology with the Church Style Guide..."
        )
        try:
            prepared = self._engine.transform(document, on_progress)
        except PlainnessError as exc:
            log.error("Preparation failed: %s", exc)
            self._say(
                f"I encountered an issue during preparation: {exc}\n\n"
                "Your original text is unchanged. Would you like to try again?"
            )
            raise
        finally:
            self._end_request()

        if not self._is_current(generation) or document != self._document:
            log.warning("Discarding prepared text for a document that has since changed")
            return self._document

        self._apply_wholesale(prepared)
        self._say(
            "✓ Document prepared successfully!\n\n**Changes applied:**\n"
            "• Footnotes converted to MLA inline citations\n"
            "• Terminology aligned with Church Style Guide (August 2018)\n\n"
            "A backup of your original text was saved to version history."
        )
        return prepared

    def chat(self, message: str) -> str | None:
        """Send *message* to the assistant; returns the reply, or None on failure.

        Failures are reported as an assistant message in the chat history
        rather than raised.
        """
        message = message.strip()
        if not message:
            return None
        self._begin_request()
        history = list(self._chat)
        self._chat.append({"role": "user", "content": message})
        self._schedule_chat()
        try:
            reply = self._engine.chat(self._document, history, message, len(self._suggestions))
        except PlainnessError as exc:
            log.error("Chat failed: %s", exc)
            self._say(f"I had trouble processing that request: {exc}")
            return None
        finally:
            self._end_request()
        self._say(reply)
        return reply

    # ------------------------------------------------------------------
    # Suggestion mutation
    # ------------------------------------------------------------------

    def accept(self, suggestion_id: int) -> Suggestion | None:
        """Apply a suggestion to the document. Returns None if it is unknown or stale."""
        result = self._suggestions.accept(self._document, suggestion_id)
        if result is None:
            self._schedule_suggestions()
            return None
        self._document, accepted = result
        self._schedule_content()
        self._say(f'✓ Applied: "{_clip(accepted.original)}" → "{_clip(accepted.replacement)}"')
        return accepted

    def dismiss(self, suggestion_id: int) -> Suggestion | None:
        dismissed = self._suggestions.dismiss(suggestion_id)
        if dismissed is None:
            return None
        self._schedule_suggestions()
        self._say("Dismissed suggestion. Your original phrasing preserved.")
        return dismissed

    # ------------------------------------------------------------------
    # Content changes
    # ------------------------------------------------------------------

    def _apply_wholesale(self, content: str) -> None:
        self._generation += 1
        self._document = content
        self._suggestions.clear()
        self._schedule_content()

    def edit(self, content: str) -> None:
        """Record an in-place edit; suggestions are re-checked, not cleared."""
        if content == self._document:
            return
        self._document = content
        self._suggestions.revalidate(content)
        self._schedule_content()

    def replace_document(self, content: str, label: str = "Before replacing document") -> None:
        """Swap in new content, snapshotting the current text first."""
        if self._document.strip():
            self._ledger.save_version(self._document, label)
        self._apply_wholesale(content)

    def new_document(self) -> None:
        """Start over: snapshot non-empty content, empty the document, reset chat."""
        if self._document.strip():
            self._ledger.save_version(self._document, "Auto-save before new document")
        self._apply_wholesale("")
        self._chat = [dict(WELCOME_MESSAGE)]
        self._schedule_chat()

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def save_version(self, label: str | None = None) -> Version:
        version = self._ledger.save_version(self._document, label)
        self._say(f'✓ Saved version: "{version.label}" ({version.word_count} words)')
        return version

    def restore_version(self, version_id: int) -> str | None:
        """Replace the document with a stored version; None if not found.

        The live content is snapshotted as ``"Before restore"`` after the
        lookup, so the restored version cannot be evicted by its own backup.
        """
        restored = self._ledger.restore_version(version_id)
        if restored is None:
            return None
        if self._document.strip() and self._document != restored:
            self._ledger.save_version(self._document, "Before restore")
        self._apply_wholesale(restored)
        self._say("✓ Version restored.")
        return restored

    def delete_version(self, version_id: int) -> bool:
        return self._ledger.delete_version(version_id)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def set_categories(self, categories: list[str]) -> list[str]:
        """Set the active categories; unknown ids are ignored."""
        self._categories = normalize_categories(categories)
        self._schedule_preferences()
        return list(self._categories)

    def toggle_category(self, category: str) -> list[str]:
        current = set(self._categories)
        current ^= {category}
        return self.set_categories(sorted(current))
