# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Source scanner: collects candidate source files under the scan roots.

Walks each root with an explicit work queue instead of recursion, so deeply
nested trees cannot exhaust the call stack. Build output, vendored packages
and hidden directories are pruned as whole subtrees.

Failure behavior:
- Unreadable directories (permissions, deleted mid-walk) are skipped and
  logged at DEBUG; a scan never fails because of one subtree.
- The max_files cap stops runaway scans on misconfigured roots. A capped
  scan sets `truncated`; callers must not treat its result as complete.
"""

import logging
import os
from collections import deque
from pathlib import Path
from typing import Deque, Iterable, List, Optional, Set

from surgical_verify.models import normalize_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 50000


class SourceScanner:
    """Collects source files by extension while pruning excluded directories.

    Usage:
        scanner = SourceScanner(
            exclude_dirs={"node_modules"},
            exclude_prefixes=["."],
            extensions={".ts", ".tsx"},
        )
        files = scanner.scan(["/repo/frontend", "/repo/backend"])
    """

    def __init__(
        self,
        exclude_dirs: Iterable[str],
        exclude_prefixes: Iterable[str],
        extensions: Iterable[str],
        max_files: int = DEFAULT_MAX_FILES,
    ):
        """Initialize scanner.

        Args:
            exclude_dirs: Directory basenames to skip entirely.
            exclude_prefixes: Directory basename prefixes to skip entirely.
            extensions: File extensions to collect (with leading dot).
            max_files: Stop after collecting this many files.
        """
        self.exclude_dirs: Set[str] = set(exclude_dirs)
        self.exclude_prefixes = tuple(exclude_prefixes)
        self.extensions: Set[str] = set(extensions)
        self.max_files = max_files
        self.skipped_dirs: List[str] = []
        self.truncated = False

    def is_excluded_dir(self, name: str) -> bool:
        """Check whether a directory basename prunes its subtree."""
        if name in self.exclude_dirs:
            return True
        return bool(self.exclude_prefixes) and name.startswith(self.exclude_prefixes)

    def is_supported(self, path: str) -> bool:
        """Check whether a file has a collected extension."""
        return os.path.splitext(path)[1] in self.extensions

    def is_excluded(self, path: str, root: Optional[str] = None) -> bool:
        """Check whether any directory component of path is excluded.

        Args:
            path: File path to check.
            root: If given, only components below root are considered.

        Returns:
            True if a scan would never reach this file.
        """
        parts = Path(path).parts[:-1]
        if root is not None:
            try:
                parts = Path(path).relative_to(root).parts[:-1]
            except ValueError:
                pass
        return any(self.is_excluded_dir(part) for part in parts if part not in ("/", ""))

    def scan(self, roots: Iterable[str]) -> List[str]:
        """Collect source files under each root.

        Args:
            roots: Directories to walk. Missing roots are skipped.

        Returns:
            Absolute, normalized file paths in deterministic order. If more
            than max_files files exist, the first max_files are returned and
            `truncated` is set.
        """
        results: List[str] = []
        self.skipped_dirs = []
        self.truncated = False

        for root in roots:
            root_path = normalize_path(root)
            if not os.path.isdir(root_path):
                logger.debug(f"Scan root does not exist, skipping: {root_path}")
                continue

            if self._walk(root_path, results):
                self.truncated = True
                logger.warning(
                    f"Scan stopped at max_files={self.max_files}; "
                    "check scan_roots and exclude_dirs"
                )
                break

        logger.debug(f"Scanned {len(results)} files ({len(self.skipped_dirs)} dirs unreadable)")
        return results

    def _walk(self, root: str, results: List[str]) -> bool:
        """Walk one root, appending matches to results.

        Returns:
            True if a file beyond the max_files cap was found.
        """
        queue: Deque[str] = deque([root])

        while queue:
            directory = queue.popleft()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                # ScanError: treat as an empty subtree
                logger.debug(f"Skipped unreadable directory {directory}: {e}")
                self.skipped_dirs.append(directory)
                continue

            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        if not self.is_excluded_dir(entry.name):
                            queue.append(entry.path)
                        continue
                    if not entry.is_file():
                        continue
                except OSError as e:
                    logger.debug(f"Skipped unreadable entry {entry.path}: {e}")
                    continue

                if self.is_supported(entry.name):
                    if len(results) >= self.max_files:
                        return True
                    results.append(normalize_path(entry.path))

        return False
