# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for dependency graph construction, inversion and blast radius.

Tests coverage:
- Forward graph invariants (every scanned file is a node, edges stay in set)
- Inversion symmetry
- Blast radius closure, cycles and self-exclusion
- Unreadable files and cache transparency
- Graph queries and export
"""

import os
from pathlib import Path
from typing import Dict, List

import pytest

from surgical_verify.cache import ContentCache
from surgical_verify.graph import DependencyGraph, DependencyGraphBuilder, blast_radius, invert
from surgical_verify.resolver import ImportResolver
from surgical_verify.scanner import SourceScanner

EXTENSIONS = [".ts", ".tsx", ".js", ".jsx"]


def write_files(root: Path, files: Dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def scan(root: Path) -> List[str]:
    scanner = SourceScanner(
        exclude_dirs=["node_modules", "dist"], exclude_prefixes=["."], extensions=EXTENSIONS
    )
    return scanner.scan([str(root)])


def new_builder(root: Path, cache=None) -> DependencyGraphBuilder:
    resolver = ImportResolver(alias_map={"@/": str(root / "frontend")}, extensions=EXTENSIONS)
    return DependencyGraphBuilder(resolver=resolver, cache=cache)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    write_files(
        tmp_path,
        {
            "frontend/lib/db.ts": "export const db = {};\n",
            "frontend/lib/users.ts": "import { db } from './db';\nimport React from 'react';\n",
            "frontend/app/page.tsx": "import { getUsers } from '@/lib/users';\n",
            "frontend/app/lazy.tsx": "const P = lazy(() => import('../app/page'));\n",
            "frontend/app/broken.ts": "import x from './missing';\n",
            "frontend/app/outside.ts": "import x from '../../shared/util';\n",
            "shared/util.ts": "export const util = 1;\n",
        },
    )
    return tmp_path


def p(root: Path, relative: str) -> str:
    return str(root / relative)


class TestDependencyGraphBuilder:
    """Tests for forward graph construction."""

    def test_builds_forward_graph(self, project: Path) -> None:
        files = scan(project / "frontend")
        builder = new_builder(project)

        forward = builder.build(files)

        assert set(forward) == set(files)
        assert forward[p(project, "frontend/lib/users.ts")] == {p(project, "frontend/lib/db.ts")}
        assert forward[p(project, "frontend/app/page.tsx")] == {
            p(project, "frontend/lib/users.ts")
        }
        assert forward[p(project, "frontend/app/lazy.tsx")] == {
            p(project, "frontend/app/page.tsx")
        }
        assert forward[p(project, "frontend/lib/db.ts")] == set()

    def test_edges_stay_inside_scanned_set(self, project: Path) -> None:
        """Files outside the scanned roots produce no node."""
        files = scan(project / "frontend")
        builder = new_builder(project)

        forward = builder.build(files)

        assert forward[p(project, "frontend/app/outside.ts")] == set()
        assert p(project, "shared/util.ts") not in forward
        for edges in forward.values():
            assert edges <= set(forward)

    def test_unresolved_diagnostics(self, project: Path) -> None:
        builder = new_builder(project)
        builder.build(scan(project / "frontend"))

        by_specifier = {u.specifier: u for u in builder.unresolved}
        assert by_specifier["react"].resolved_path is None
        assert by_specifier["./missing"].resolved_path is None
        assert by_specifier["../../shared/util"].resolved_path == p(project, "shared/util.ts")

    def test_unreadable_file_has_no_edges(self, project: Path) -> None:
        """A file that cannot be decoded contributes zero edges."""
        (project / "frontend" / "app" / "binary.ts").write_bytes(b"\xff\xfe\x00import")
        builder = new_builder(project)

        forward = builder.build(scan(project / "frontend"))

        binary = p(project, "frontend/app/binary.ts")
        assert forward[binary] == set()
        assert binary in builder.failed_files

    def test_vanished_file_has_no_edges(self, project: Path) -> None:
        """A file deleted between scan and build is recorded as failed."""
        files = scan(project / "frontend")
        os.remove(p(project, "frontend/lib/users.ts"))
        builder = new_builder(project)

        forward = builder.build(files)

        assert forward[p(project, "frontend/lib/users.ts")] == set()
        assert p(project, "frontend/lib/users.ts") in builder.failed_files

    def test_build_is_idempotent(self, project: Path) -> None:
        files = scan(project / "frontend")
        assert new_builder(project).build(files) == new_builder(project).build(files)

    def test_warm_cache_matches_cold(self, project: Path) -> None:
        files = scan(project / "frontend")
        cache = ContentCache()

        cold = new_builder(project, cache=cache).build(files)
        hits_before = cache.get_statistics().hits
        warm = new_builder(project, cache=cache).build(files)

        assert warm == cold
        assert cache.get_statistics().hits > hits_before

    def test_cache_sees_content_changes(self, project: Path) -> None:
        """Editing a file changes its hash, so stale specifiers are not reused."""
        files = scan(project / "frontend")
        cache = ContentCache()
        new_builder(project, cache=cache).build(files)

        (project / "frontend" / "lib" / "db.ts").write_text("import u from './users';\n")
        forward = new_builder(project, cache=cache).build(files)

        assert forward[p(project, "frontend/lib/db.ts")] == {p(project, "frontend/lib/users.ts")}

    def test_sources_record_hashes(self, project: Path) -> None:
        builder = new_builder(project)
        builder.build(scan(project / "frontend"))

        source = builder.sources[p(project, "frontend/lib/db.ts")]
        assert source.extension == ".ts"
        assert len(source.content_hash()) == 64


class TestInvertAndBlastRadius:
    """Tests for inversion and closure."""

    def test_invert_symmetry(self) -> None:
        forward = {"a": {"b", "c"}, "b": {"c"}, "c": set(), "d": set()}
        reverse = invert(forward)

        assert set(reverse) == set(forward)
        for importer, imports in forward.items():
            for imported in imports:
                assert importer in reverse[imported]
        for imported, importers in reverse.items():
            for importer in importers:
                assert imported in forward[importer]
        assert reverse["d"] == set()
        assert reverse["c"] == {"a", "b"}

    def test_invert_adds_value_only_nodes(self) -> None:
        reverse = invert({"a": {"z"}})
        assert reverse == {"a": set(), "z": {"a"}}

    def test_transitive_dependents(self) -> None:
        # page -> users -> db
        reverse = invert({"page": {"users"}, "users": {"db"}, "db": set()})
        assert blast_radius(reverse, "db") == {"users", "page"}
        assert blast_radius(reverse, "page") == set()

    def test_cycle_terminates_and_excludes_target(self) -> None:
        # A -> B -> C -> A
        reverse = invert({"A": {"B"}, "B": {"C"}, "C": {"A"}})
        assert blast_radius(reverse, "A") == {"B", "C"}

    def test_self_import_excluded(self) -> None:
        reverse = invert({"A": {"A"}, "B": {"A"}})
        assert blast_radius(reverse, "A") == {"B"}

    def test_include_target(self) -> None:
        reverse = invert({"a": {"b"}})
        assert blast_radius(reverse, "b", include_target=True) == {"a", "b"}

    def test_unknown_target_has_empty_radius(self) -> None:
        assert blast_radius(invert({"a": set()}), "missing") == set()

    def test_closure_is_closed(self) -> None:
        """Every dependent of a member is itself a member or the target."""
        forward = {
            "a": {"b"},
            "b": {"c"},
            "c": {"d"},
            "d": set(),
            "e": {"c", "d"},
            "f": {"a"},
        }
        reverse = invert(forward)
        radius = blast_radius(reverse, "d")
        assert radius == {"a", "b", "c", "e", "f"}
        for member in radius:
            assert reverse[member] <= radius | {"d"}


class TestDependencyGraph:
    """Tests for graph queries and export."""

    @pytest.fixture
    def graph(self) -> DependencyGraph:
        # page -> users -> db; admin -> users; util isolated
        return DependencyGraph(
            {
                "/r/page.ts": {"/r/users.ts"},
                "/r/admin.ts": {"/r/users.ts"},
                "/r/users.ts": {"/r/db.ts"},
                "/r/db.ts": set(),
                "/r/util.ts": set(),
            }
        )

    def test_validate(self, graph: DependencyGraph) -> None:
        is_valid, errors = graph.validate()
        assert is_valid
        assert errors == []

    def test_validate_detects_inconsistency(self, graph: DependencyGraph) -> None:
        graph.reverse["/r/db.ts"].discard("/r/users.ts")
        is_valid, errors = graph.validate()
        assert not is_valid
        assert errors

    def test_direct_queries(self, graph: DependencyGraph) -> None:
        assert graph.dependencies("/r/page.ts") == {"/r/users.ts"}
        assert graph.dependents("/r/users.ts") == {"/r/page.ts", "/r/admin.ts"}
        assert graph.dependents("/r/unknown.ts") == set()
        assert "/r/db.ts" in graph
        assert len(graph) == 5

    def test_roots_and_leaves(self, graph: DependencyGraph) -> None:
        assert graph.roots() == ["/r/db.ts", "/r/util.ts"]
        assert graph.leaves() == ["/r/admin.ts", "/r/page.ts", "/r/util.ts"]

    def test_depths_and_prioritize(self, graph: DependencyGraph) -> None:
        depths = graph.depths()
        assert depths["/r/db.ts"] == 0
        assert depths["/r/users.ts"] == 1
        assert depths["/r/page.ts"] == 2
        assert graph.prioritize(["/r/page.ts", "/r/db.ts", "/r/users.ts"]) == [
            "/r/db.ts",
            "/r/users.ts",
            "/r/page.ts",
        ]

    def test_dependency_closure(self, graph: DependencyGraph) -> None:
        assert graph.dependency_closure("/r/page.ts") == ["/r/page.ts", "/r/users.ts", "/r/db.ts"]
        assert graph.dependency_closure("/r/page.ts", max_depth=1) == [
            "/r/page.ts",
            "/r/users.ts",
        ]

    def test_statistics(self, graph: DependencyGraph) -> None:
        assert graph.statistics() == {
            "total_files": 5,
            "relationships": 3,
            "roots": 2,
            "leaves": 3,
        }

    def test_to_dict(self, graph: DependencyGraph) -> None:
        data = graph.to_dict(project_root="/r")

        assert data["metadata"]["total_files"] == 5
        assert data["metadata"]["project_root"] == "/r"
        users = next(f for f in data["files"] if f["path"] == "/r/users.ts")
        assert users["imports"] == ["/r/db.ts"]
        assert users["dependents"] == ["/r/admin.ts", "/r/page.ts"]
        assert users["relative_path"] == "users.ts"
        assert data["most_connected_files"][0] == {"file": "/r/users.ts", "dependent_count": 2}
        assert all(entry["dependent_count"] > 0 for entry in data["most_connected_files"])
