# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Import specifier extraction for JS/TS source text.

Extraction is isolated behind the ImportExtractor interface so a real parser
can replace the regex implementation without touching the graph builder or
the scope policy.

RegexImportExtractor uses two independent lightweight patterns instead of a
parser. Known approximations, accepted for speed and zero parser dependency:
- Import statements inside comments or template strings are still matched
- Side-effect imports (``import './polyfill'``) are not matched
- ``require()`` calls and ``export ... from`` re-exports are not matched
- Dynamic imports with non-literal arguments are not matched
"""

import re
from abc import ABC, abstractmethod
from typing import List, Pattern

# import x from '...'; import { a, b } from "..."; import * as ns from '...'
STATIC_IMPORT_PATTERN: Pattern[str] = re.compile(
    r"""import\s+(?:[\w\s{},*]+)\s+from\s+['"]([^'"]+)['"]"""
)

# import('...')
DYNAMIC_IMPORT_PATTERN: Pattern[str] = re.compile(r"""import\(['"]([^'"]+)['"]\)""")


class ImportExtractor(ABC):
    """Abstract base class for import specifier extractors.

    Extractors are stateless: extract() depends only on the text passed in,
    which is what makes its result cacheable by content hash.
    """

    @abstractmethod
    def extract(self, text: str) -> List[str]:
        """Extract raw import specifiers from source text.

        Args:
            text: Full file content.

        Returns:
            Raw specifiers in match order; duplicates allowed. Order carries
            no meaning downstream.
        """
        pass

    @abstractmethod
    def name(self) -> str:
        """Return extractor name for logging and cache keys."""
        pass


class RegexImportExtractor(ImportExtractor):
    """Static and dynamic import extraction via text patterns."""

    def extract(self, text: str) -> List[str]:
        specifiers = [m.group(1) for m in STATIC_IMPORT_PATTERN.finditer(text)]
        specifiers.extend(m.group(1) for m in DYNAMIC_IMPORT_PATTERN.finditer(text))
        return specifiers

    def name(self) -> str:
        return "RegexImportExtractor"
