# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Dependency-aware surgical verification for monorepos."""

from .cache import ContentCache
from .config import Config
from .extractors import ImportExtractor, RegexImportExtractor
from .graph import DependencyGraph, DependencyGraphBuilder, blast_radius, invert
from .models import (
    CacheEntry,
    CacheStatistics,
    ScopeDecision,
    SourceFile,
    SubprojectPartition,
    UnresolvedImport,
    VerificationMode,
)
from .policy import ScopePolicy
from .resolver import ImportResolver
from .scanner import SourceScanner
from .service import VerificationService

__version__ = "0.1.0"

__all__ = [
    "ContentCache",
    "Config",
    "ImportExtractor",
    "RegexImportExtractor",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "blast_radius",
    "invert",
    "CacheEntry",
    "CacheStatistics",
    "ScopeDecision",
    "SourceFile",
    "SubprojectPartition",
    "UnresolvedImport",
    "VerificationMode",
    "ScopePolicy",
    "ImportResolver",
    "SourceScanner",
    "VerificationService",
]
