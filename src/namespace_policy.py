"""
Namespace policy module for kube-snapshot.

This module decides which namespaces take part in a snapshot. It holds the
user supplied exclusion list and the fixed set of reserved system namespaces
used for labeling.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Pattern

logger = logging.getLogger(__name__)

# Namespaces reserved for platform-internal use. Classification only, never filtering.
SYSTEM_NAMESPACES = frozenset({'kube-system', 'kube-public'})

# Exclusion entries starting with this prefix are regular expressions
REGEX_PREFIX = 'rx:'


def is_system_namespace(namespace_name: str) -> bool:
    """Check if a namespace is one of the reserved system namespaces."""
    return namespace_name in SYSTEM_NAMESPACES


def parse_namespace_list(value: str) -> List[str]:
    """
    Parse a comma-separated list of namespace names or patterns.

    Args:
        value: Comma-separated string, e.g. "default, rx:tmp-.*"

    Returns:
        List of non-empty, stripped entries
    """
    if not value:
        return []

    entries = [entry.strip() for entry in value.split(',')]
    return [entry for entry in entries if entry]


@dataclass
class NamespacePolicy:
    """Exclusion rules for namespaces, as exact names or rx: patterns."""
    excludes: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.excludes = [entry.strip() for entry in self.excludes if entry and entry.strip()]
        self._names = set()
        self._patterns: List[Pattern] = []

        for entry in self.excludes:
            if entry.startswith(REGEX_PREFIX):
                expression = entry[len(REGEX_PREFIX):]
                try:
                    self._patterns.append(re.compile(expression))
                except re.error as e:
                    raise ValueError(f"Invalid namespace exclusion pattern '{expression}': {e}") from e
            else:
                self._names.add(entry)

        if self.excludes:
            logger.debug(f"Namespace policy excludes {len(self._names)} names and "
                         f"{len(self._patterns)} patterns")

    def is_excluded(self, namespace_name: str) -> bool:
        """
        Check if a namespace is excluded from the snapshot.

        Args:
            namespace_name: Name of the namespace

        Returns:
            bool: True if the name matches an exact entry or fully matches a pattern
        """
        if namespace_name in self._names:
            return True
        return any(pattern.fullmatch(namespace_name or '') for pattern in self._patterns)
