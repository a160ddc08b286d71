"""Named page collections exposed to templates.

A collection is defined by a CollectionQuery: glob patterns over input
paths, optional exclusions, and the rule that draft pages never appear.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from .content import Page
from .utils import glob_match

ARTICLES_GLOB = "articles/*/index.md"
PAGES_GLOB = "pages/*/index.njk"
ERROR_PAGE = "pages/404/index.njk"


class PageCollection(Sequence[Page]):
    """Lightweight helper for working with lists of Pages in templates and code."""

    def __init__(self, pages: Iterable[Page]):
        self._pages = list(pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def published(self) -> PageCollection:
        return PageCollection(p for p in self._pages if not p.draft)

    def sorted(self, reverse: bool = False) -> PageCollection:
        """Sort pages by date, then by input path.

        Args:
            reverse: If True, newest first.

        Returns:
            A new PageCollection with sorted pages.
        """
        return PageCollection(
            sorted(self._pages, key=lambda p: (p.date, p.input_path), reverse=reverse)
        )

    def latest(self, count: int = 5) -> PageCollection:
        return PageCollection(self.sorted(reverse=True)[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"


@dataclass(frozen=True)
class CollectionQuery:
    """Declarative selection of pages by input path.

    Attributes:
        patterns: Globs relative to the input root; a page matching any is selected.
        exclude: Globs removing otherwise selected pages.
    """

    patterns: tuple[str, ...]
    exclude: tuple[str, ...] = ()

    def matches(self, page: Page) -> bool:
        if not any(glob_match(p, page.input_path) for p in self.patterns):
            return False
        return not any(glob_match(p, page.input_path) for p in self.exclude)

    def select(self, pages: Iterable[Page]) -> PageCollection:
        """Return matching, non-draft pages in date order, each at most once."""
        return PageCollection(p for p in pages if self.matches(p)).published().sorted()


DEFAULT_QUERIES: dict[str, CollectionQuery] = {
    "articles": CollectionQuery(patterns=(ARTICLES_GLOB,)),
    "sitemap": CollectionQuery(
        patterns=(ARTICLES_GLOB, PAGES_GLOB),
        exclude=(ERROR_PAGE,),
    ),
}


def build_collections(
    pages: Iterable[Page], queries: dict[str, CollectionQuery] | None = None
) -> dict[str, PageCollection]:
    """Build every named collection plus ``all``.

    Args:
        pages: All loaded pages.
        queries: Named queries; defaults to ``articles`` and ``sitemap``.

    Returns:
        Mapping of collection name to PageCollection.
    """
    pages = list(pages)
    collections = {
        name: query.select(pages)
        for name, query in (queries or DEFAULT_QUERIES).items()
    }
    collections["all"] = PageCollection(pages).sorted()
    return collections
