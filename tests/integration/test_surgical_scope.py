# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""End-to-end tests: scan, build, invert, blast radius and scope decision."""

from pathlib import Path

from surgical_verify.models import VerificationMode


class TestNarrowScope:
    """Changes with a small blast radius are verified surgically."""

    def test_direct_dependent(self, monorepo: Path, service_for) -> None:
        """Changing b.ts affects a.ts only."""
        service = service_for(monorepo)

        graph = service.build_graph()
        target = str(monorepo / "frontend" / "b.ts")
        assert graph.blast_radius(target) == {str(monorepo / "frontend" / "a.ts")}

        decision = service.decide("frontend/b.ts")
        assert decision.mode == VerificationMode.NARROW
        assert set(decision.files) == {target, str(monorepo / "frontend" / "a.ts")}
        assert decision.count == 1

    def test_isolated_file(self, monorepo: Path, service_for) -> None:
        """A file with no imports and no dependents is verified alone."""
        service = service_for(monorepo)
        target = str(monorepo / "backend" / "src" / "health.ts")

        decision = service.decide("backend/src/health.ts")

        assert decision.mode == VerificationMode.NARROW
        assert decision.files == [target]
        assert decision.count == 0
        assert [p.name for p in decision.partitions] == ["backend"]
        assert decision.partitions[0].relative_files() == ["src/health.ts"]

    def test_alias_and_dynamic_imports_are_followed(self, monorepo: Path, service_for) -> None:
        """db.ts reaches admin/page.tsx through an alias and a dynamic import."""
        service = service_for(monorepo)

        decision = service.decide("frontend/lib/db.ts")

        assert decision.files == sorted(
            str(monorepo / relative)
            for relative in [
                "frontend/lib/db.ts",
                "frontend/lib/users.ts",
                "frontend/app/page.tsx",
                "frontend/app/admin/page.tsx",
            ]
        )

    def test_excluded_directories_never_enter_graph(self, monorepo: Path, service_for) -> None:
        graph = service_for(monorepo).build_graph()

        assert not any("node_modules" in path or ".next" in path for path in graph.files())
        assert graph.dependents(str(monorepo / "frontend" / "lib" / "db.ts")) == {
            str(monorepo / "frontend" / "lib" / "users.ts")
        }

    def test_cross_subproject_partitions(self, monorepo: Path, service_for) -> None:
        """A frontend file importing backend code splits the narrow set."""
        (monorepo / "frontend" / "bridge.ts").write_text("import { c } from '../backend/c';\n")
        service = service_for(monorepo)

        decision = service.decide("backend/c.ts")

        names = {p.name: p.files for p in decision.partitions}
        assert names["backend"] == sorted(
            [str(monorepo / "backend" / "c.ts"), str(monorepo / "backend" / "src" / "routes.ts")]
        )
        assert names["frontend"] == [str(monorepo / "frontend" / "bridge.ts")]

    def test_import_cycle(self, make_project, service_for) -> None:
        """A -> B -> C -> A: changing A affects exactly B and C."""
        project = make_project(
            {
                "frontend/A.ts": "import b from './B';\n",
                "frontend/B.ts": "import c from './C';\n",
                "frontend/C.ts": "import a from './A';\n",
            }
        )

        decision = service_for(project).decide("frontend/A.ts")

        assert decision.count == 2
        assert decision.mode == VerificationMode.NARROW


class TestFullScope:
    """Changes that require checking the whole codebase."""

    def test_global_trigger(self, monorepo: Path, service_for) -> None:
        decision = service_for(monorepo).decide("package.json")

        assert decision.mode == VerificationMode.FULL
        assert decision.files == []

    def test_nested_manifest_is_a_trigger(self, monorepo: Path, service_for) -> None:
        (monorepo / "frontend" / "package.json").write_text("{}\n")

        decision = service_for(monorepo).decide("frontend/package.json")

        assert decision.mode == VerificationMode.FULL

    def test_threshold_exceeded(self, fan_in_project, service_for) -> None:
        project = fan_in_project(51)

        decision = service_for(project).decide("frontend/lib/core.ts")

        assert decision.mode == VerificationMode.FULL
        assert decision.count == 51

    def test_threshold_reached_is_still_narrow(self, fan_in_project, service_for) -> None:
        project = fan_in_project(50)

        decision = service_for(project).decide("frontend/lib/core.ts")

        assert decision.mode == VerificationMode.NARROW
        assert decision.count == 50
        assert len(decision.files) == 51

    def test_missing_scan_roots_degrade_gracefully(self, monorepo: Path, service_for) -> None:
        """An empty scan yields an isolated target, not an error."""
        service = service_for(monorepo, scan_roots=["services"])

        decision = service.decide("frontend/b.ts")

        assert decision.mode == VerificationMode.NARROW
        assert decision.files == [str(monorepo / "frontend" / "b.ts")]


class TestCacheTransparency:
    """A warm cache gives the same decisions as a cold one."""

    def test_warm_equals_cold(self, monorepo: Path, service_for) -> None:
        service = service_for(monorepo)

        cold = service.decide("frontend/lib/db.ts")
        warm = service.decide("frontend/lib/db.ts")

        assert warm == cold
        assert service.cache.get_statistics().hits > 0

    def test_edit_between_runs(self, monorepo: Path, service_for) -> None:
        service = service_for(monorepo)
        assert service.decide("frontend/b.ts").count == 1

        (monorepo / "frontend" / "a.ts").write_text("export const a = 0;\n")

        assert service.decide("frontend/b.ts").count == 0
