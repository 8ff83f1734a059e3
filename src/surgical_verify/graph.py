# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Module dependency graph: construction, inversion and blast radius.

Flow: scanned files -> DependencyGraphBuilder -> ForwardGraph
      -> invert() -> ReverseGraph -> blast_radius()

Graph invariants:
- Every scanned file is a key of the forward graph, even with no imports
- Edges only connect files of the scanned set; external packages, broken
  paths and files outside the scanned roots produce no node
- reverse[B] contains A iff forward[A] contains B, and both maps have the
  same key set, so files with zero dependents are unambiguous

Graphs are built fresh for every verification run and discarded after use.
"""

import logging
import os
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Tuple

from surgical_verify.cache import ContentCache
from surgical_verify.extractors import ImportExtractor, RegexImportExtractor
from surgical_verify.models import ForwardGraph, ReverseGraph, SourceFile, UnresolvedImport
from surgical_verify.resolver import ImportResolver

logger = logging.getLogger(__name__)


class DependencyGraphBuilder:
    """Builds the forward graph (file -> files it imports).

    Each file's specifiers are extracted independently, so files are read
    one at a time with no cross-file ordering. Extraction results are cached
    by path and content hash; a cold cache yields the same graph.

    Diagnostics from the last build:
    - unresolved: specifiers that produced no edge
    - failed_files: files whose content could not be read
    - sources: SourceFile records for every file that was read
    """

    def __init__(
        self,
        resolver: ImportResolver,
        extractor: Optional[ImportExtractor] = None,
        cache: Optional[ContentCache] = None,
    ):
        """Initialize builder.

        Args:
            resolver: Resolver for the current run.
            extractor: Import extractor (default: RegexImportExtractor).
            cache: Content cache for extraction results. None disables caching.
        """
        self.resolver = resolver
        self.extractor = extractor if extractor is not None else RegexImportExtractor()
        self.cache = cache

        self.unresolved: List[UnresolvedImport] = []
        self.failed_files: Dict[str, str] = {}
        self.sources: Dict[str, SourceFile] = {}
        self.last_build_ms = 0.0

    def build(self, files: Iterable[str]) -> ForwardGraph:
        """Build the forward graph for a scanned file set.

        Args:
            files: Absolute, normalized paths from the scanner.

        Returns:
            Mapping of every input file to the set of scanned files it imports.
        """
        start_time = time.time()
        file_list = list(files)
        scanned: Set[str] = set(file_list)

        self.unresolved = []
        self.failed_files = {}
        self.sources = {}

        graph: ForwardGraph = {}
        for path in file_list:
            graph[path] = self._edges_for(path, scanned)

        self.last_build_ms = (time.time() - start_time) * 1000
        edge_count = sum(len(edges) for edges in graph.values())
        logger.info(
            f"Dependency graph built in {self.last_build_ms:.1f}ms: "
            f"{len(graph)} files, {edge_count} edges, {len(self.failed_files)} unreadable"
        )
        return graph

    def _edges_for(self, path: str, scanned: Set[str]) -> Set[str]:
        specifiers = self.extract_specifiers(path)
        if specifiers is None:
            return set()

        edges: Set[str] = set()
        for specifier in specifiers:
            resolved = self.resolver.resolve(path, specifier)
            if resolved is None:
                self.unresolved.append(UnresolvedImport(importer=path, specifier=specifier))
            elif resolved not in scanned:
                logger.debug(f"Dropping import outside scanned set: {specifier} in {path}")
                self.unresolved.append(
                    UnresolvedImport(importer=path, specifier=specifier, resolved_path=resolved)
                )
            else:
                edges.add(resolved)
        return edges

    def extract_specifiers(self, path: str) -> Optional[List[str]]:
        """Read one file and return its raw import specifiers.

        Returns:
            Specifier list, or None if the file could not be read (the
            failure is recorded in failed_files).
        """
        try:
            source = SourceFile.from_path(path)
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            # GraphBuildFailure: the file contributes zero edges
            logger.warning(f"Failed to read {path}, treating as having no imports: {e}")
            self.failed_files[path] = str(e)
            return None

        content_hash = source.record_content(data)
        self.sources[path] = source

        if self.cache is not None:
            cached = self.cache.get_file(path, content_hash)
            if isinstance(cached, list):
                return cached

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Failed to decode {path} as UTF-8, treating as having no imports")
            self.failed_files[path] = str(e)
            return None

        specifiers = self.extractor.extract(text)
        if self.cache is not None:
            self.cache.set_file(path, specifiers, content_hash)
        return specifiers


def invert(forward: ForwardGraph) -> ReverseGraph:
    """Invert a forward graph into a dependents index.

    Every key and every value of forward becomes a key of the result,
    mapping to the (possibly empty) set of files that import it.
    """
    reverse: ReverseGraph = {}
    for importer, imports in forward.items():
        reverse.setdefault(importer, set())
        for imported in imports:
            reverse.setdefault(imported, set()).add(importer)
    return reverse


def blast_radius(reverse: ReverseGraph, target: str, include_target: bool = False) -> Set[str]:
    """Compute every file affected by a change to target.

    Breadth-first traversal over the reverse graph. The visited set is seeded
    with target, so import cycles terminate and target is never counted as
    its own dependent.

    Args:
        reverse: Dependents index from invert().
        target: Changed file.
        include_target: Add target itself to the result.

    Returns:
        Direct and transitive dependents of target.
    """
    visited: Set[str] = {target}
    affected: Set[str] = set()
    frontier: Deque[str] = deque([target])

    while frontier:
        current = frontier.popleft()
        for dependent in reverse.get(current, ()):
            if dependent not in visited:
                visited.add(dependent)
                affected.add(dependent)
                frontier.append(dependent)

    if include_target:
        affected.add(target)
    return affected


class DependencyGraph:
    """Bidirectional view over one forward graph snapshot.

    Maintains two indices for efficient queries:
    - forward: file -> files it imports
    - reverse: file -> files that import it
    """

    def __init__(self, forward: ForwardGraph):
        """Initialize from a forward graph.

        Values that are not keys (possible when forward was built by hand)
        are added as keys with empty import sets.
        """
        self.forward: ForwardGraph = {path: set(deps) for path, deps in forward.items()}
        for deps in forward.values():
            for dep in deps:
                self.forward.setdefault(dep, set())
        self.reverse: ReverseGraph = invert(self.forward)

    def __contains__(self, path: object) -> bool:
        return path in self.forward

    def __len__(self) -> int:
        return len(self.forward)

    def files(self) -> List[str]:
        """All files in the graph, sorted."""
        return sorted(self.forward)

    def dependencies(self, path: str) -> Set[str]:
        """Files that path imports directly."""
        return set(self.forward.get(path, set()))

    def dependents(self, path: str) -> Set[str]:
        """Files that import path directly."""
        return set(self.reverse.get(path, set()))

    def blast_radius(self, path: str, include_target: bool = False) -> Set[str]:
        """Direct and transitive dependents of path."""
        return blast_radius(self.reverse, path, include_target=include_target)

    def roots(self) -> List[str]:
        """Files that import nothing inside the graph."""
        return sorted(path for path, deps in self.forward.items() if not deps)

    def leaves(self) -> List[str]:
        """Files nothing inside the graph imports."""
        return sorted(path for path, deps in self.reverse.items() if not deps)

    def depths(self) -> Dict[str, int]:
        """Distance of each file from the roots, following dependents.

        Files reachable only through import cycles never meet a root and
        keep depth 0.
        """
        depth: Dict[str, int] = {path: 0 for path in self.forward}
        roots = self.roots()
        visited: Set[str] = set(roots)
        queue: Deque[str] = deque(roots)

        while queue:
            current = queue.popleft()
            for dependent in sorted(self.reverse.get(current, ())):
                if dependent not in visited:
                    visited.add(dependent)
                    depth[dependent] = depth[current] + 1
                    queue.append(dependent)

        return depth

    def dependency_closure(self, path: str, max_depth: int = 3) -> List[str]:
        """The file plus what it imports, transitively, up to max_depth hops.

        Returns:
            Files in breadth-first order, starting with path.
        """
        closure: List[str] = [path]
        seen: Set[str] = {path}
        queue: Deque[Tuple[str, int]] = deque([(path, 0)])

        while queue:
            current, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for dep in sorted(self.forward.get(current, ())):
                if dep not in seen:
                    seen.add(dep)
                    closure.append(dep)
                    queue.append((dep, depth + 1))

        return closure

    def prioritize(self, paths: Iterable[str]) -> List[str]:
        """Order paths dependencies-first (by depth, then by path)."""
        depth = self.depths()
        return sorted(paths, key=lambda p: (depth.get(p, 0), p))

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate forward/reverse consistency.

        Returns:
            Tuple of (is_valid, error_messages).
        """
        errors: List[str] = []

        forward_keys = set(self.forward)
        reverse_keys = set(self.reverse)
        for path in sorted(forward_keys - reverse_keys):
            errors.append(f"Index inconsistency: {path} missing from dependents index")
        for path in sorted(reverse_keys - forward_keys):
            errors.append(f"Index inconsistency: {path} missing from dependencies index")

        for importer, imports in self.forward.items():
            for imported in imports:
                if importer not in self.reverse.get(imported, set()):
                    errors.append(
                        f"Index inconsistency: {imported} ← {importer} not in dependents index"
                    )
        for imported, importers in self.reverse.items():
            for importer in importers:
                if imported not in self.forward.get(importer, set()):
                    errors.append(
                        f"Index inconsistency: {importer} → {imported} not in dependencies index"
                    )

        return len(errors) == 0, errors

    def statistics(self) -> Dict[str, int]:
        """Summary counts for the graph."""
        return {
            "total_files": len(self.forward),
            "relationships": sum(len(deps) for deps in self.forward.values()),
            "roots": len(self.roots()),
            "leaves": len(self.leaves()),
        }

    def to_dict(self, project_root: Optional[str] = None) -> Dict[str, Any]:
        """Export graph to a JSON-compatible dict.

        Args:
            project_root: If given, files also carry a relative_path.

        Returns:
            Dictionary with metadata, files and most_connected_files.
        """
        metadata: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **self.statistics(),
        }
        if project_root:
            metadata["project_root"] = project_root

        files = []
        for path in self.files():
            file_entry: Dict[str, Any] = {
                "path": path,
                "imports": sorted(self.forward[path]),
                "dependents": sorted(self.reverse.get(path, set())),
            }
            if project_root:
                file_entry["relative_path"] = _relative_path(path, project_root)
            files.append(file_entry)

        most_connected = sorted(self.reverse.items(), key=lambda item: (-len(item[1]), item[0]))
        return {
            "metadata": metadata,
            "files": files,
            "most_connected_files": [
                {"file": path, "dependent_count": len(deps)}
                for path, deps in most_connected[:10]
                if deps
            ],
        }


def _relative_path(path: str, project_root: str) -> str:
    try:
        return os.path.relpath(path, project_root)
    except ValueError:
        # On Windows, relpath fails for paths on different drives
        return path
