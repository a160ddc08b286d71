"""Template filters for Inkwell.

Pure value transforms exposed to templates. Filters that need shared
state (the Markdown renderer, the site domain, the project root) are built
by create_filters, which closes over an explicit configuration instead of
reading module-level globals.

Date filters accept ``date`` and ``datetime`` values; plain dates and naive
datetimes are taken as UTC, matching how front matter dates are loaded.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any

from markupsafe import Markup

from .assets import process_css_file
from .config import SiteConfig
from .content import normalize_date
from .html_utils import absolutize_links, join_root_url
from .renderers import MarkdownRenderer


def date_long(value: date | datetime) -> str:
    """Format a date in long English form.

    Examples:
        >>> date_long(date(2024, 3, 5))
        'March 5, 2024'
    """
    value = normalize_date(value)
    return f"{value:%B} {value.day}, {value.year}"


def date_short(value: date | datetime, today: date | None = None) -> str:
    """Format a date without the year when it falls in the current year.

    Dates from earlier years fall back to the long form.

    Args:
        value: Date to format.
        today: Reference date; defaults to the current date.

    Examples:
        >>> date_short(date(2024, 3, 5), today=date(2024, 12, 1))
        'March 5'

        >>> date_short(date(2023, 3, 5), today=date(2024, 12, 1))
        'March 5, 2023'
    """
    value = normalize_date(value)
    current_year = (today or datetime.now(timezone.utc).date()).year
    if value.year < current_year:
        return date_long(value)
    return f"{value:%B} {value.day}"


def date_iso(value: date | datetime) -> str:
    """Return the UTC calendar date as ``YYYY-MM-DD``."""
    return normalize_date(value).astimezone(timezone.utc).date().isoformat()


def date_to_rfc3339(value: date | datetime) -> str:
    """Format a date for Atom feeds, e.g. ``2024-03-05T00:00:00Z``."""
    value = normalize_date(value).astimezone(timezone.utc).replace(microsecond=0)
    return value.isoformat().replace("+00:00", "Z")


def date_to_rfc822(value: date | datetime) -> str:
    """Format a date for RSS feeds, e.g. ``Tue, 05 Mar 2024 00:00:00 +0000``."""
    return format_datetime(normalize_date(value).astimezone(timezone.utc))


def newest_item_date(collection: Iterable[Any]) -> datetime | None:
    """Return the most recent ``date`` in a collection, or None when empty."""
    dates = [normalize_date(item.date) for item in collection]
    return max(dates) if dates else None


def absolute_url(url: str, base: str) -> str:
    """Resolve a URL against a base, leaving absolute URLs untouched."""
    if url.startswith(("http://", "https://", "//")):
        return url
    return join_root_url(base, url)


def _page_url(page: Any) -> str:
    if isinstance(page, str):
        return page
    if isinstance(page, Mapping):
        return page.get("url") or "/"
    return getattr(page, "url", None) or "/"


def create_filters(
    site: SiteConfig,
    markdown: MarkdownRenderer,
    project_root: Path,
) -> dict[str, Callable[..., Any]]:
    """Build the full filter table for a template environment.

    Args:
        site: Global site record; its domain drives ``absolute``.
        markdown: Shared Markdown renderer.
        project_root: Base for paths given to the ``css`` filter.

    Returns:
        Mapping of filter name to callable.
    """

    def absolute(content: str, page: Any) -> Markup:
        return Markup(absolutize_links(str(content), site.domain, _page_url(page)))

    def html_filter(render: Callable[[str], str]) -> Callable[[str], Markup]:
        return lambda text: Markup(render(str(text)))

    def css(path: str) -> Markup:
        return Markup(process_css_file(project_root / path))

    return {
        "markdown": html_filter(markdown.render),
        "markdownInline": html_filter(markdown.render_inline),
        "markdownRemove": markdown.remove,
        "absolute": absolute,
        "dateLong": date_long,
        "dateShort": date_short,
        "dateISO": date_iso,
        "dateToRfc3339": date_to_rfc3339,
        "dateToRfc822": date_to_rfc822,
        "getNewestCollectionItemDate": newest_item_date,
        "absoluteUrl": absolute_url,
        "css": css,
    }
