"""Utility functions for Inkwell.

This module contains small helpers used throughout the Inkwell codebase:
string slugs, glob matching over source paths, and output directory handling.

Key functions:
    slugify: Convert a title or heading text to a URL slug.
    unique_slug: Slugify while avoiding ids already taken in a document.
    glob_match: Match a relative POSIX path against a glob with ``**`` support.
    is_markdown: Check if a path is a Markdown file.
    is_template: Check if a path is a Nunjucks-style template.
    ensure_clean_dir: Empty (or create) an output directory.
"""

from __future__ import annotations

import re
import shutil
from functools import lru_cache
from pathlib import Path


def slugify(text: str) -> str:
    """Convert heading or title text to a URL-friendly slug.

    Args:
        text: Arbitrary text.

    Returns:
        Lowercase slug with words joined by hyphens.

    Examples:
        >>> slugify("Hello, World!")
        'hello-world'

        >>> slugify("  CSS   Nesting ")
        'css-nesting'
    """
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s_]+", "-", slug)
    return slug.strip("-")


def unique_slug(text: str, taken: set[str]) -> str:
    """Slugify text and suffix it until it does not collide with ``taken``.

    The chosen slug is added to ``taken``.

    Args:
        text: Text to slugify.
        taken: Slugs already in use.

    Returns:
        A slug not previously present in ``taken``.
    """
    base = slugify(text) or "section"
    candidate = base
    counter = 0
    while candidate in taken:
        counter += 1
        candidate = f"{base}-{counter}"
    taken.add(candidate)
    return candidate


@lru_cache(maxsize=128)
def _glob_to_regex(pattern: str) -> re.Pattern:
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts) + r"\Z")


def glob_match(pattern: str, path: str) -> bool:
    """Match a relative POSIX path against a glob pattern.

    ``*`` and ``?`` never cross a ``/``; ``**`` matches any number of
    directories. The whole path must match.

    Args:
        pattern: Glob such as ``articles/*/index.md`` or ``articles/**/*``.
        path: Path relative to the input root, using forward slashes.

    Returns:
        True if the path matches.

    Examples:
        >>> glob_match("articles/*/index.md", "articles/hello/index.md")
        True

        >>> glob_match("articles/*/index.md", "articles/a/b/index.md")
        False
    """
    return _glob_to_regex(pattern).match(path) is not None


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has .md extension (case-insensitive).
    """
    return path.suffix.lower() == ".md"


def is_template(path: Path) -> bool:
    """Check if a path is a Nunjucks-style template.

    Args:
        path: Path to check.

    Returns:
        True if the file has .njk extension.
    """
    return path.suffix.lower() == ".njk"


def ensure_clean_dir(path: Path) -> None:
    """Start a build with an empty output directory, creating it if needed."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)
