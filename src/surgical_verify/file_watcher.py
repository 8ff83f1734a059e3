# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""File system watcher for cache invalidation and watch mode.

This module implements file system monitoring on top of watchdog:
- Timestamp-only tracking per changed source file
- The scanner's exclusion and extension rules decide which events count,
  plus an optional trigger predicate for non-source files (manifests,
  lockfiles, tool configs) whose changes still matter
- Invalidation callbacks on modify/delete/move (content cache eviction)
- Change callbacks on every relevant event (re-deciding scope in watch mode)

Performance Characteristics:
- No debouncing: rapid successive saves each trigger callbacks; the cache
  hash check keeps concurrent decisions correct
- Callbacks run synchronously on the watchdog thread

Known Limitations:
- file_event_timestamps grows unbounded (no cleanup of deleted files)
"""

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from surgical_verify.scanner import SourceScanner

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Callback signature: (filepath: str) -> None
FileCallback = Callable[[str], None]


class FileWatcher:
    """Watches a project for source file changes.

    Usage:
        watcher = FileWatcher(project_root="/repo", scanner=scanner)
        watcher.register_invalidation_callback(cache.invalidate_file)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        project_root: str,
        scanner: SourceScanner,
        is_trigger: Optional[Callable[[str], bool]] = None,
    ):
        """Initialize FileWatcher.

        Args:
            project_root: Root directory to watch recursively.
            scanner: Scanner whose rules filter events.
            is_trigger: Predicate accepting non-source files whose events
                must still be reported (e.g. ScopePolicy.is_global_trigger).
        """
        self.project_root = Path(project_root).resolve()
        self.scanner = scanner
        self.is_trigger = is_trigger

        self.file_event_timestamps: Dict[str, float] = {}

        self._invalidation_callbacks: List[FileCallback] = []
        self._change_callbacks: List[FileCallback] = []

        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _FileEventHandler(self)

        logger.info(f"FileWatcher initialized for {self.project_root}")

    def should_ignore(self, file_path: str) -> bool:
        """Check whether an event for file_path is irrelevant.

        Args:
            file_path: Absolute file path.

        Returns:
            True if the file lives in an excluded directory, or is neither a
            source file nor a trigger file.
        """
        if self.scanner.is_excluded(file_path, root=str(self.project_root)):
            return True
        if self.scanner.is_supported(file_path):
            return False
        return self.is_trigger is None or not self.is_trigger(file_path)

    def register_invalidation_callback(self, callback: FileCallback) -> None:
        """Register a callback invoked when a file is modified, deleted or moved away.

        Example:
            watcher.register_invalidation_callback(cache.invalidate_file)
        """
        if callback not in self._invalidation_callbacks:
            self._invalidation_callbacks.append(callback)
            logger.debug(f"Registered invalidation callback: {callback}")

    def unregister_invalidation_callback(self, callback: FileCallback) -> None:
        """Unregister a previously registered invalidation callback."""
        if callback in self._invalidation_callbacks:
            self._invalidation_callbacks.remove(callback)
            logger.debug(f"Unregistered invalidation callback: {callback}")

    def register_change_callback(self, callback: FileCallback) -> None:
        """Register a callback invoked for every relevant file event.

        Change callbacks run after invalidation callbacks, so they never see
        cache entries for the old content.
        """
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)
            logger.debug(f"Registered change callback: {callback}")

    def _notify(self, callbacks: List[FileCallback], file_path: str) -> None:
        for callback in list(callbacks):
            try:
                callback(file_path)
            except Exception as e:
                # One callback failure must not prevent the others from running
                logger.error(f"File callback failed for {file_path}: {e}")

    def handle_change(self, file_path: str, invalidate: bool = True) -> None:
        """Record a change and notify callbacks.

        Args:
            file_path: Absolute path of the changed file.
            invalidate: Whether invalidation callbacks apply (modify/delete/move).
        """
        self.update_timestamp(file_path)
        if invalidate:
            self._notify(self._invalidation_callbacks, file_path)
        self._notify(self._change_callbacks, file_path)

    def update_timestamp(self, file_path: str) -> None:
        """Update timestamp for file event."""
        self.file_event_timestamps[file_path] = time.time()
        logger.debug(f"Updated timestamp for {file_path}")

    def get_timestamp(self, file_path: str) -> Optional[float]:
        """Get last event timestamp for file, or None if no events recorded."""
        return self.file_event_timestamps.get(file_path)

    def start(self) -> None:
        """Start watching file system.

        Raises:
            RuntimeError: If watcher is already running
        """
        if self._observer is not None and self._observer.is_alive():
            raise RuntimeError("FileWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.project_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version

        logger.info(f"FileWatcher started, monitoring {self.project_root}")

    def stop(self) -> None:
        """Stop watching file system.

        Blocks until observer thread terminates (with timeout).
        """
        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info("FileWatcher stopped")

    def is_running(self) -> bool:
        """Check if watcher is currently running."""
        return self._observer is not None and self._observer.is_alive()


class _FileEventHandler(FileSystemEventHandler):
    """Internal event handler for watchdog.

    Delegates to FileWatcher for filtering and callbacks.
    """

    def __init__(self, watcher: FileWatcher):
        super().__init__()
        self.watcher = watcher

    def _handle_event(self, event: FileSystemEvent, invalidate: bool) -> None:
        if event.is_directory:
            return

        # Convert path from Union[bytes, str] to str
        file_path = str(event.src_path)
        if self.watcher.should_ignore(file_path):
            return

        logger.debug(f"Event: {event.event_type} - {file_path}")
        self.watcher.handle_change(file_path, invalidate=invalidate)

    def on_created(self, event: FileSystemEvent) -> None:
        # New file: nothing cached yet
        self._handle_event(event, invalidate=False)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(event, invalidate=True)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle_event(event, invalidate=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treated as delete (old path) plus create (new path)."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return

        src_path = str(event.src_path)
        dest_path = str(event.dest_path)

        if not self.watcher.should_ignore(src_path):
            logger.debug(f"Event: moved_from - {src_path}")
            self.watcher.handle_change(src_path, invalidate=True)

        if not self.watcher.should_ignore(dest_path):
            logger.debug(f"Event: moved_to - {dest_path}")
            self.watcher.handle_change(dest_path, invalidate=False)
