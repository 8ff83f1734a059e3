# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Import resolver: maps a raw import specifier to a file on disk.

Resolution order:
1. Alias prefixes (longest first), e.g. "@/components/x" -> frontend/components/x
2. Relative specifiers ("./x", "../x") against the importer's directory
3. Anything else is a bare package specifier and resolves to None

For a candidate base path, probes in order: the exact path, the path plus
each extension, and ``<path>/index<ext>`` for each extension.

An unresolvable specifier is a normal outcome (None), never an exception.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from surgical_verify.models import normalize_path

logger = logging.getLogger(__name__)


class ImportResolver:
    """Resolves import specifiers to source files.

    Existence probes are memoized for the resolver's lifetime, which is one
    verification run. Do not reuse a resolver across runs.
    """

    def __init__(self, alias_map: Dict[str, str], extensions: Iterable[str]):
        """Initialize resolver.

        Args:
            alias_map: Alias prefix -> absolute directory the prefix stands for.
            extensions: Extensions to probe, in priority order.
        """
        # Longest prefix wins so "@backend/" is never shadowed by "@/"
        self._aliases: List[Tuple[str, str]] = sorted(
            ((prefix, normalize_path(target)) for prefix, target in alias_map.items()),
            key=lambda item: len(item[0]),
            reverse=True,
        )
        self.extensions: List[str] = list(extensions)
        self._is_file_cache: Dict[str, bool] = {}

    def resolve(self, source_file: str, specifier: str) -> Optional[str]:
        """Resolve a specifier found in source_file.

        Args:
            source_file: Absolute path of the importing file.
            specifier: Raw import specifier.

        Returns:
            Absolute normalized path of the imported file, or None.
        """
        base = self._candidate_base(source_file, specifier)
        if base is None:
            return None

        for candidate in self._candidates(base):
            if self._is_file(candidate):
                return candidate

        logger.debug(f"Failed to resolve: {specifier} in {source_file}")
        return None

    def _candidate_base(self, source_file: str, specifier: str) -> Optional[str]:
        for prefix, target in self._aliases:
            if specifier.startswith(prefix):
                return normalize_path(os.path.join(target, specifier[len(prefix) :]))

        if specifier.startswith("."):
            return normalize_path(os.path.join(os.path.dirname(source_file), specifier))

        # Bare specifier: external package, outside the graph
        return None

    def _candidates(self, base: str) -> List[str]:
        candidates = [base]
        candidates.extend(base + ext for ext in self.extensions)
        candidates.extend(os.path.join(base, "index" + ext) for ext in self.extensions)
        return candidates

    def _is_file(self, path: str) -> bool:
        cached = self._is_file_cache.get(path)
        if cached is None:
            try:
                cached = os.path.isfile(path)
            except (OSError, ValueError):
                cached = False
            self._is_file_cache[path] = cached
        return cached
