"""Filesystem watcher for a working document edited outside the CLI.

A ``watchdog`` observer on the document's parent directory reports
creates, modifies and moves onto the file. The callback receives the new
text; unchanged or unreadable content is not reported.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

log = logging.getLogger(__name__)

# Callback signature: (new_text)
DocumentCallback = Callable[[str], None]


class _DocumentEventHandler(FileSystemEventHandler):
    """Watchdog handler filtering events down to one file."""

    def __init__(self, path: Path, callback: DocumentCallback, initial: str | None) -> None:
        super().__init__()
        self._path = path
        self._callback = callback
        self._last_text = initial

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save via rename-over land here
        if not event.is_directory:
            self._handle(getattr(event, "dest_path", ""))

    def _handle(self, raw_path: str | bytes) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        if not raw_path or Path(raw_path).resolve() != self._path:
            return
        try:
            text = self._path.read_text()
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("Cannot read %s: %s", self._path, exc)
            return
        if text == self._last_text:
            return
        self._last_text = text
        log.info("Document changed on disk (%d chars)", len(text))
        self._callback(text)


class DocumentWatcher:
    """Watch a single document file.

    Parameters
    ----------
    path:
        The document file.
    callback:
        Called with the new file content on every effective change.
    """

    def __init__(self, path: Path, callback: DocumentCallback) -> None:
        self._path = Path(path).resolve()
        self._callback = callback
        self._observer: Observer | None = None

    def start(self) -> None:
        """Start the filesystem observer."""
        initial = self._path.read_text() if self._path.exists() else None
        handler = _DocumentEventHandler(self._path, self._callback, initial)
        self._observer = Observer()
        self._observer.schedule(handler, str(self._path.parent), recursive=False)
        self._observer.daemon = True
        self._observer.start()
        log.info("Watching: %s", self._path)

    def stop(self) -> None:
        """Stop the filesystem observer."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
