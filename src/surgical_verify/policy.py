# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Verification scope policy: NARROW (surgical) or FULL verification.

Decision rules, in order:
1. Target matches a global trigger (manifest, lockfile, root config) -> FULL
2. More than `threshold` transitive dependents -> FULL
3. Otherwise NARROW on {target} plus its blast radius, partitioned by
   sub-project so each partition is checked with its own tool configuration

Callers that cannot compute a blast radius (graph build failed, target
unreadable) must use full(), never skip verification.
"""

import fnmatch
import logging
import os
from typing import Dict, Iterable, List, Optional, Set, Tuple

from surgical_verify.models import (
    ScopeDecision,
    SubprojectPartition,
    VerificationMode,
    normalize_path,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 50

# Partition name for narrow files under no configured sub-project
ROOT_PARTITION = "root"


class ScopePolicy:
    """Decides the verification scope for a changed file.

    Usage:
        policy = ScopePolicy(
            project_root="/repo",
            global_triggers=["package.json"],
            subprojects={"frontend": "frontend", "backend": "backend"},
        )
        decision = policy.decide("/repo/frontend/b.ts", {"/repo/frontend/a.ts"})
    """

    def __init__(
        self,
        project_root: str,
        threshold: int = DEFAULT_THRESHOLD,
        global_triggers: Optional[Iterable[str]] = None,
        subprojects: Optional[Dict[str, str]] = None,
    ):
        """Initialize policy.

        Args:
            project_root: Root that trigger patterns and sub-projects are relative to.
            threshold: Largest blast radius still verified narrowly.
            global_triggers: Glob patterns that always force FULL.
            subprojects: Sub-project name -> directory relative to project_root.

        Raises:
            ValueError: If a sub-project uses the reserved root partition name.
        """
        if ROOT_PARTITION in (subprojects or {}):
            raise ValueError(f"Sub-project name '{ROOT_PARTITION}' is reserved")
        self.project_root = normalize_path(project_root)
        self.threshold = threshold
        self.global_triggers: List[str] = list(global_triggers or [])
        # Longest directory first so nested sub-projects win over their parents
        self._subprojects: List[Tuple[str, str]] = sorted(
            (
                (name, normalize_path(os.path.join(self.project_root, directory)))
                for name, directory in (subprojects or {}).items()
            ),
            key=lambda item: len(item[1]),
            reverse=True,
        )

    def is_global_trigger(self, target: str) -> bool:
        """Check whether a change to target always forces full verification."""
        name = os.path.basename(target)
        relative = self._relative(target)
        for pattern in self.global_triggers:
            if fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(relative, pattern):
                logger.debug(f"{relative} matches global trigger '{pattern}'")
                return True
        return False

    def decide(self, target: str, blast_radius: Set[str]) -> ScopeDecision:
        """Decide between NARROW and FULL for a changed file.

        Args:
            target: Absolute path of the changed file.
            blast_radius: Transitive dependents of target, excluding target.

        Returns:
            The scope decision.
        """
        target = normalize_path(target)
        affected = set(blast_radius)
        affected.discard(target)
        count = len(affected)

        if self.is_global_trigger(target):
            return self.full(target, "global trigger file changed", count)

        if count > self.threshold:
            return self.full(
                target,
                f"blast radius of {count} files exceeds threshold {self.threshold}",
                count,
            )

        files = sorted(affected | {target})
        decision = ScopeDecision(
            target=target,
            mode=VerificationMode.NARROW,
            files=files,
            count=count,
            reason=f"{count} dependent files within threshold {self.threshold}",
            partitions=self.partition(files),
        )
        logger.info(f"NARROW verification of {len(files)} files for {self._relative(target)}")
        return decision

    def full(self, target: str, reason: str, count: int = 0) -> ScopeDecision:
        """Build a FULL decision.

        Also the fail-safe outcome whenever the blast radius is unknown.
        """
        logger.info(f"FULL verification for {self._relative(target)}: {reason}")
        return ScopeDecision(
            target=normalize_path(target),
            mode=VerificationMode.FULL,
            files=[],
            count=count,
            reason=reason,
        )

    def partition(self, files: Iterable[str]) -> List[SubprojectPartition]:
        """Group files by the sub-project directory they live under.

        Returns:
            Non-empty partitions sorted by sub-project name, with the root
            partition last.
        """
        grouped: Dict[str, List[str]] = {}
        for path in sorted(files):
            grouped.setdefault(self.subproject_for(path), []).append(path)

        roots = {name: root for name, root in self._subprojects}
        ordered_names = [name for name, _ in sorted(self._subprojects) if name in grouped]
        if ROOT_PARTITION in grouped:
            ordered_names.append(ROOT_PARTITION)

        return [
            SubprojectPartition(
                name=name,
                root=roots.get(name, self.project_root),
                files=grouped[name],
            )
            for name in ordered_names
        ]

    def subproject_for(self, path: str) -> str:
        """Name of the sub-project containing path, or the root partition name."""
        for name, root in self._subprojects:
            if path == root or path.startswith(root + os.sep):
                return name
        return ROOT_PARTITION

    def _relative(self, path: str) -> str:
        try:
            return os.path.relpath(path, self.project_root)
        except ValueError:
            return path
