# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for surgical verification.

This module defines the data structures shared by the scanner, graph builder,
scope policy and cache:
- SourceFile: A scanned source file with a lazily computed content hash
- ForwardGraph / ReverseGraph: Adjacency maps between source files
- UnresolvedImport: Diagnostic record for a dropped import specifier
- CacheEntry: A value stored in the content cache
- CacheStatistics: Usage counters for the content cache
- VerificationMode: FULL or NARROW verification
- SubprojectPartition: Narrow files belonging to one sub-project
- ScopeDecision: The decision handed to the lint/type-check orchestrator

All models use JSON-compatible primitives for serialization.
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# file -> files it imports
ForwardGraph = Dict[str, Set[str]]

# file -> files that import it
ReverseGraph = Dict[str, Set[str]]

_HASH_CHUNK_SIZE = 64 * 1024


def compute_content_hash(data: bytes) -> str:
    """Return the hex SHA-256 digest of file content."""
    return hashlib.sha256(data).hexdigest()


def normalize_path(path: str) -> str:
    """Return an absolute, normalized form of path (symlinks not resolved)."""
    return os.path.normpath(os.path.abspath(path))


class VerificationMode:
    """Verification scope modes.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    FULL = "FULL"  # check the whole codebase
    NARROW = "NARROW"  # check the target plus its blast radius only


@dataclass
class SourceFile:
    """A source file discovered by the scanner.

    Recomputed on every invocation, never persisted: a stale hash must not
    survive a process restart.
    """

    path: str
    extension: str
    mtime: float
    _content_hash: Optional[str] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_path(cls, path: str) -> "SourceFile":
        """Build a SourceFile from a path on disk.

        Raises:
            OSError: If the file cannot be stat'ed.
        """
        normalized = normalize_path(path)
        return cls(
            path=normalized,
            extension=os.path.splitext(normalized)[1],
            mtime=os.path.getmtime(normalized),
        )

    def content_hash(self) -> str:
        """SHA-256 of the file content, computed on first use.

        Raises:
            OSError: If the file cannot be read.
        """
        if self._content_hash is None:
            digest = hashlib.sha256()
            with open(self.path, "rb") as f:
                for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
                    digest.update(chunk)
            self._content_hash = digest.hexdigest()
        return self._content_hash

    def record_content(self, data: bytes) -> str:
        """Hash content that was already read, so the file is not read twice."""
        self._content_hash = compute_content_hash(data)
        return self._content_hash

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "path": self.path,
            "extension": self.extension,
            "mtime": self.mtime,
        }
        if self._content_hash is not None:
            result["content_hash"] = self._content_hash
        return result


@dataclass
class UnresolvedImport:
    """An import specifier that produced no graph edge.

    Kept for diagnostics only; never added to the graph.
    """

    importer: str
    specifier: str
    resolved_path: Optional[str] = None  # set when the target exists outside the scanned set

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {"importer": self.importer, "specifier": self.specifier}
        if self.resolved_path is not None:
            result["resolved_path"] = self.resolved_path
        return result


@dataclass
class CacheEntry:
    """A value held by the content cache.

    An entry is expired once ``now - timestamp > ttl``. When content_hash is
    set, lookups carrying a different hash treat the entry as absent.
    """

    data: Any
    timestamp: float  # Unix timestamp of the write
    ttl: float  # seconds
    content_hash: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        """Check whether the entry has outlived its TTL."""
        return now - self.timestamp > self.ttl

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict.

        Returns:
            Dictionary with all fields, excluding content_hash when unset.
        """
        result: Dict[str, Any] = {
            "data": self.data,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
        }
        if self.content_hash is not None:
            result["content_hash"] = self.content_hash
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Deserialize from JSON-compatible dict.

        Raises:
            KeyError: If required fields are missing from data dict.
        """
        return cls(
            data=data["data"],
            timestamp=data["timestamp"],
            ttl=data["ttl"],
            content_hash=data.get("content_hash"),
        )


@dataclass
class CacheStatistics:
    """Usage counters for the content cache."""

    hits: int
    misses: int
    expirations: int  # entries evicted because their TTL ran out
    hash_invalidations: int  # entries evicted because the content hash changed
    corrupt_evictions: int  # malformed entries evicted on read
    current_entry_count: int
    peak_entry_count: int

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "hash_invalidations": self.hash_invalidations,
            "corrupt_evictions": self.corrupt_evictions,
            "current_entry_count": self.current_entry_count,
            "peak_entry_count": self.peak_entry_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheStatistics":
        """Deserialize from JSON-compatible dict.

        Raises:
            KeyError: If required fields are missing from data dict.
        """
        return cls(
            hits=data["hits"],
            misses=data["misses"],
            expirations=data["expirations"],
            hash_invalidations=data["hash_invalidations"],
            corrupt_evictions=data["corrupt_evictions"],
            current_entry_count=data["current_entry_count"],
            peak_entry_count=data["peak_entry_count"],
        )


@dataclass
class SubprojectPartition:
    """Narrow-mode files that belong to one sub-project.

    Each partition is checked with its own sub-project's lint and
    type-check configuration.
    """

    name: str
    root: str  # absolute sub-project directory
    files: List[str]

    def relative_files(self) -> List[str]:
        """Files relative to the sub-project root, as a per-project tool expects them."""
        return [os.path.relpath(f, self.root) for f in self.files]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "name": self.name,
            "root": self.root,
            "files": list(self.files),
            "relative_files": self.relative_files(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubprojectPartition":
        """Deserialize from JSON-compatible dict."""
        return cls(name=data["name"], root=data["root"], files=list(data["files"]))


@dataclass
class ScopeDecision:
    """Outcome of the verification scope policy.

    For FULL, files is empty: the orchestrator checks everything. count is
    the number of transitive dependents of the target (0 when unknown).
    """

    target: str
    mode: str  # VerificationMode value
    files: List[str]
    count: int
    reason: str = ""
    partitions: List[SubprojectPartition] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        """Whether the orchestrator must run the full verification."""
        return self.mode == VerificationMode.FULL

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON decision object."""
        return {
            "target": self.target,
            "mode": self.mode,
            "files": list(self.files),
            "count": self.count,
            "reason": self.reason,
            "partitions": [p.to_dict() for p in self.partitions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScopeDecision":
        """Deserialize from JSON-compatible dict."""
        return cls(
            target=data["target"],
            mode=data["mode"],
            files=list(data["files"]),
            count=data["count"],
            reason=data.get("reason", ""),
            partitions=[SubprojectPartition.from_dict(p) for p in data.get("partitions", [])],
        )
