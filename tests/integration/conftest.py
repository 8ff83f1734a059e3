# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides small on-disk monorepos (frontend and backend sub-projects, a root
manifest, vendored and build-output directories) for end-to-end tests.
"""

from pathlib import Path
from typing import Callable, Dict

import pytest

from surgical_verify.config import Config
from surgical_verify.service import VerificationService

MakeProject = Callable[[Dict[str, str]], Path]


@pytest.fixture
def make_project(tmp_path: Path) -> MakeProject:
    """Factory writing a {relative path: content} mapping under a fresh root."""

    def _make(files: Dict[str, str]) -> Path:
        project_root = tmp_path / "monorepo"
        for relative, content in files.items():
            path = project_root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return project_root

    return _make


@pytest.fixture
def monorepo(make_project: MakeProject) -> Path:
    """Create a representative monorepo.

    Creates:
    - frontend/a.ts importing frontend/b.ts; b.ts and backend/c.ts import nothing
    - Alias and relative imports across nested frontend directories
    - A dynamic import
    - node_modules and .next content that must never enter the graph
    - A root package.json (global trigger)

    Returns:
        Path to the project root directory
    """
    return make_project(
        {
            "package.json": '{"name": "monorepo", "private": true}\n',
            "frontend/a.ts": "import { b } from './b';\n",
            "frontend/b.ts": "export const b = 1;\n",
            "frontend/lib/db.ts": "export const db = {};\n",
            "frontend/lib/users.ts": (
                "import { db } from './db';\nimport { z } from 'zod';\n"
            ),
            "frontend/app/page.tsx": (
                "import React from 'react';\nimport { listUsers } from '@/lib/users';\n"
            ),
            "frontend/app/admin/page.tsx": (
                "const Users = lazy(() => import('../page'));\n"
            ),
            "frontend/node_modules/zod/index.js": "import x from './internal';\n",
            "frontend/.next/server/page.js": "import { db } from '../../lib/db';\n",
            "backend/c.ts": "export const c = 3;\n",
            "backend/src/routes.ts": "import { c } from '../c';\n",
            "backend/src/health.ts": "export const healthy = true;\n",
        }
    )


@pytest.fixture
def fan_in_project(make_project: MakeProject) -> Callable[[int], Path]:
    """Factory for a hub file with exactly n transitive dependents.

    frontend/lib/core.ts is imported by frontend/lib/mid.ts, which is
    imported by n - 1 pages.
    """

    def _make(n: int) -> Path:
        files = {
            "frontend/lib/core.ts": "export const core = 0;\n",
            "frontend/lib/mid.ts": "import { core } from './core';\n",
        }
        for i in range(n - 1):
            files[f"frontend/pages/p{i}.tsx"] = "import { core } from '@/lib/mid';\n"
        return make_project(files)

    return _make


@pytest.fixture
def service_for() -> Callable[..., VerificationService]:
    """Factory creating services that are shut down after the test."""
    services = []

    def _create(project_root: Path, **overrides) -> VerificationService:
        values = {"scan_roots": ["frontend", "backend"]}
        values.update(overrides)
        service = VerificationService(Config.from_dict(values), project_root=str(project_root))
        services.append(service)
        return service

    yield _create

    for service in services:
        service.shutdown()
