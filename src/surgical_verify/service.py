# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""VerificationService - Business logic layer for surgical verification.

This module coordinates the full pipeline for one changed file:

    SourceScanner -> DependencyGraphBuilder (ImportResolver, ContentCache)
    -> invert -> blast_radius -> ScopePolicy -> ScopeDecision

Key Responsibilities:
- Own the process-wide ContentCache and its lifecycle
- Build a fresh dependency graph for every request
- Convert every internal failure into a FULL decision, never into a skipped
  verification
- Provide impact reports and graph exports for the CLI and MCP layers
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from surgical_verify.cache import ContentCache
from surgical_verify.config import Config
from surgical_verify.file_watcher import FileCallback, FileWatcher
from surgical_verify.graph import DependencyGraph, DependencyGraphBuilder
from surgical_verify.models import ScopeDecision, normalize_path
from surgical_verify.policy import ScopePolicy
from surgical_verify.resolver import ImportResolver
from surgical_verify.scanner import SourceScanner

logger = logging.getLogger(__name__)

# Security constants
_MAX_FILEPATH_LENGTH = 4096  # Maximum filepath length to prevent DoS


class VerificationService:
    """Coordinator for dependency-aware verification scope decisions.

    Graph structures are owned by a single call and discarded afterwards;
    only the cache survives between calls.

    Usage:
        service = VerificationService(Config(), project_root="/repo")
        decision = service.decide("frontend/lib/db.ts")
        print(decision.to_dict())
        service.shutdown()
    """

    def __init__(
        self,
        config: Config,
        project_root: Optional[str] = None,
        cache: Optional[ContentCache] = None,
    ):
        """Initialize the service with its dependencies.

        Args:
            config: Configuration object.
            project_root: Root that configured paths are relative to (default: cwd).
            cache: Content cache (default: creates new cache from config TTLs).
        """
        self.config = config
        self.project_root = normalize_path(project_root or os.getcwd())

        self.cache = (
            cache
            if cache is not None
            else ContentCache(
                default_ttl=float(config.cache_default_ttl_seconds),
                file_ttl=float(config.cache_file_ttl_seconds),
            )
        )

        self.scanner = SourceScanner(
            exclude_dirs=config.exclude_dirs,
            exclude_prefixes=config.exclude_prefixes,
            extensions=config.extensions,
            max_files=config.max_files,
        )
        self.policy = ScopePolicy(
            project_root=self.project_root,
            threshold=config.blast_radius_threshold,
            global_triggers=config.global_triggers,
            subprojects=config.subprojects,
        )

        self._file_watcher: Optional[FileWatcher] = None

        logger.info(f"VerificationService initialized for {self.project_root}")

    def _absolute(self, path: str) -> str:
        return normalize_path(os.path.join(self.project_root, path))

    def _validate_filepath(self, filepath: str) -> None:
        """Validate filepath before any file operations.

        Raises:
            ValueError: If filepath is empty, contains control characters or
                exceeds length limits.
        """
        if not filepath:
            raise ValueError("Empty filepath")
        if any(ord(c) < 32 for c in filepath):
            raise ValueError("Invalid characters in filepath")
        if len(filepath) > _MAX_FILEPATH_LENGTH:
            raise ValueError(f"Filepath too long: {len(filepath)} > {_MAX_FILEPATH_LENGTH}")

    def resolve_target(self, target: str) -> str:
        """Turn an absolute or project-relative target into an absolute path."""
        self._validate_filepath(target)
        return self._absolute(target)

    def scan(self) -> List[str]:
        """Collect source files under the configured scan roots."""
        roots = [self._absolute(root) for root in self.config.scan_roots]
        return self.scanner.scan(roots)

    def _new_builder(self) -> DependencyGraphBuilder:
        # The resolver memoizes probes, so each run gets a fresh one
        resolver = ImportResolver(
            alias_map={
                prefix: self._absolute(target) for prefix, target in self.config.alias_map.items()
            },
            extensions=self.config.extensions,
        )
        return DependencyGraphBuilder(resolver=resolver, cache=self.cache)

    def build_graph(self) -> DependencyGraph:
        """Scan and build a fresh dependency graph.

        Raises:
            Exception: Only for unexpected failures; per-file I/O errors are
                absorbed by the builder.
        """
        graph, _, _ = self._build()
        return graph

    def _build(self) -> Tuple[DependencyGraph, DependencyGraphBuilder, bool]:
        builder = self._new_builder()
        files = self.scan()
        truncated = self.scanner.truncated
        forward = builder.build(files)
        return DependencyGraph(forward), builder, truncated

    def decide(self, target: str) -> ScopeDecision:
        """Decide the verification scope for a changed file.

        Never raises for graph or I/O problems: any failure to compute the
        blast radius yields a FULL decision.

        Args:
            target: Changed file, absolute or relative to the project root.

        Returns:
            The scope decision.

        Raises:
            ValueError: If target is not a usable path string.
        """
        target_path = self.resolve_target(target)

        # Global triggers need no graph at all
        if self.policy.is_global_trigger(target_path):
            return self.policy.full(target_path, "global trigger file changed")

        if not os.path.isfile(target_path):
            return self.policy.full(target_path, "target file not found")

        try:
            graph, builder, truncated = self._build()
        except Exception as e:
            logger.error(f"Dependency graph build failed for {target_path}: {e}")
            return self.policy.full(target_path, f"dependency graph build failed: {e}")

        # Dependents beyond the cap were never scanned
        if truncated:
            return self.policy.full(
                target_path, f"scan truncated at max_files={self.config.max_files}"
            )

        if target_path in builder.failed_files:
            return self.policy.full(
                target_path, f"target could not be read: {builder.failed_files[target_path]}"
            )

        if target_path not in graph:
            logger.info(f"{target_path} is outside the scanned set; it has no known dependents")

        affected = graph.blast_radius(target_path)
        return self.policy.decide(target_path, affected)

    def analyze_impact(self, target: str) -> Dict[str, Any]:
        """Report the direct dependents of a file.

        Args:
            target: File to analyze, absolute or relative to the project root.

        Returns:
            Dictionary with target, sorted dependents and their count.

        Raises:
            FileNotFoundError: If target does not exist.
        """
        target_path = self.resolve_target(target)
        if not os.path.isfile(target_path):
            raise FileNotFoundError(f"Target file not found: {target_path}")

        graph = self.build_graph()
        dependents = sorted(graph.dependents(target_path))
        return {"target": target_path, "dependents": dependents, "count": len(dependents)}

    def get_graph_statistics(self) -> Dict[str, Any]:
        """Total files and relationships of a freshly built graph."""
        graph = self.build_graph()
        stats = graph.statistics()
        return {"totalFiles": stats["total_files"], "relationships": stats["relationships"]}

    def get_dependency_graph(self) -> Dict[str, Any]:
        """Full export of a freshly built graph."""
        return self.build_graph().to_dict(project_root=self.project_root)

    def invalidate_cache(self, file_path: Optional[str] = None) -> None:
        """Invalidate cache entries.

        Args:
            file_path: Path to invalidate. If None, clears entire cache.
        """
        if file_path:
            self.cache.invalidate_file(self.resolve_target(file_path))
        else:
            self.cache.clear()

    def start_file_watcher(self, on_change: Optional[FileCallback] = None) -> FileWatcher:
        """Start watching the project, evicting cache entries of changed files.

        Args:
            on_change: Optional callback invoked with every changed file path.

        Returns:
            The running watcher.
        """
        if self._file_watcher is None:
            self._file_watcher = FileWatcher(
                self.project_root, self.scanner, is_trigger=self.policy.is_global_trigger
            )
            self._file_watcher.register_invalidation_callback(self.cache.invalidate_file)
        if on_change is not None:
            self._file_watcher.register_change_callback(on_change)
        if not self._file_watcher.is_running():
            self._file_watcher.start()
        return self._file_watcher

    def stop_file_watcher(self) -> None:
        """Stop the file watcher."""
        if self._file_watcher is not None:
            self._file_watcher.stop()

    def shutdown(self) -> None:
        """Stop the file watcher and release the cache."""
        logger.info("VerificationService shutting down...")
        self.stop_file_watcher()
        self.cache.close()
        logger.info("VerificationService shutdown complete")
