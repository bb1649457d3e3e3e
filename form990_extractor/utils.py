"""
Utility functions for common patterns across the flattening system.
"""

import re
from typing import Any, Iterable, List

from .models import PATH_SEPARATOR


class StringUtils:
    """Utility methods for tag name processing."""

    # Cached regex patterns for performance
    _regex_cache = {
        'path_split': re.compile(r'[./]+'),
    }

    @staticmethod
    def clean_tag_name(tag: Any) -> str:
        """
        Clean tag name by removing namespace URIs and prefixes.

        IRS e-file documents declare a default namespace, so lxml reports tags
        as "{http://www.irs.gov/efile}Return"; paths only use the local name.

        Args:
            tag: Raw tag name potentially with namespace

        Returns:
            Clean tag name without namespace
        """
        if tag is None:
            return 'unknown'
        tag = str(tag)
        if not tag:
            return 'unknown'

        # Remove namespace URI if present (format: {namespace}tagname)
        if tag.startswith('{'):
            end_ns = tag.find('}')
            if end_ns > 0:
                return tag[end_ns + 1:]

        # Remove namespace prefix if present (format: prefix:tagname)
        if ':' in tag:
            return tag.split(':', 1)[1]

        return tag


class PathUtils:
    """Utility methods for building and normalizing record paths."""

    @staticmethod
    def join_path(prefix: str, tag: str) -> str:
        """Extend a record path by one element name."""
        return f"{prefix}{PATH_SEPARATOR}{tag}"

    @staticmethod
    def split_path(path: str) -> List[str]:
        """Split a path written with '.' or '/' separators into element names."""
        if not path:
            return []
        return [part for part in StringUtils._regex_cache['path_split'].split(path.strip()) if part]

    @staticmethod
    def canonical_path(path: str) -> str:
        """
        Normalize a configured path to the form the flattener produces.

        "Return/ReturnHeader/TaxYr", "/Return/ReturnHeader/TaxYr" and
        "Return.ReturnHeader.TaxYr" all become ".Return.ReturnHeader.TaxYr".
        Namespace prefixes on individual segments are dropped.

        Raises:
            ValueError: If the path has no element names
        """
        parts = [StringUtils.clean_tag_name(part) for part in PathUtils.split_path(path)]
        if not parts:
            raise ValueError(f"path '{path}' does not name any element")
        return PATH_SEPARATOR + PATH_SEPARATOR.join(parts)

    @staticmethod
    def canonical_paths(paths: Iterable[str]) -> List[str]:
        """Normalize several paths, dropping duplicates while keeping order."""
        seen = []
        for path in paths:
            canonical = PathUtils.canonical_path(path)
            if canonical not in seen:
                seen.append(canonical)
        return seen
