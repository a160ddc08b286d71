"""Content loading for Inkwell.

This module discovers template sources under the input root, parses their
front matter, merges the data cascade and derives default URLs and output
paths.

Key pieces:
- Page: Dataclass representing one source template.
- extract_frontmatter: Split YAML front matter from a template body.
- DataCascade: Merges global, directory, template and front-matter data.
- UrlDeriver: Maps input paths to URLs and output files.
- ContentLoader: Walks the input root and builds Page objects.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from .config import DATA_SUFFIXES, BuildSettings
from .utils import is_markdown, is_template

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from a template.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (front matter dict, remaining body).

    Raises:
        yaml.YAMLError: If the front matter block is not valid YAML.
        ValueError: If the front matter is valid YAML but not a mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    data = yaml.safe_load(match.group(1) or "") or {}
    if not isinstance(data, dict):
        raise ValueError("front matter must be a mapping")
    return data, text[match.end() :]


def normalize_date(value: date | datetime) -> datetime:
    """Return an aware datetime; plain dates and naive datetimes are taken as UTC."""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Page:
    """A single source template and everything derived from it.

    Attributes:
        source: Absolute path to the source file.
        input_path: Path relative to the input root, using forward slashes.
        body: Template text without its front matter.
        data: Merged data cascade; front matter wins over every other layer.
        url: Public URL, or None when ``permalink: false``.
        output_path: Output file, or None when the page is not written.
        date: Page date from front matter, falling back to file mtime.
        file_slug: Directory name for ``index`` files, otherwise the file stem.
        template_format: ``"md"`` or ``"njk"``.
    """

    source: Path
    input_path: str
    body: str
    data: dict[str, Any]
    url: str | None
    output_path: Path | None
    date: datetime
    file_slug: str
    template_format: str
    _content: str | None = field(default=None, repr=False)
    _render: Callable[[Page], str] | None = field(default=None, repr=False)

    @property
    def draft(self) -> bool:
        return self.data.get("draft") is True

    @property
    def content(self) -> str:
        """Rendered body without layouts, computed on first access."""
        if self._content is None:
            if self._render is None:
                return ""
            self._content = self._render(self)
        return self._content

    @content.setter
    def content(self, value: str) -> None:
        self._content = value


class UrlDeriver:
    """Derives default URLs and output paths from input paths."""

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def derive(self, input_path: str) -> str:
        """Derive the default URL for a page.

        Args:
            input_path: Path relative to the input root.

        Returns:
            URL path such as ``/articles/hello/``.

        Examples:
            ``articles/hello/index.md`` -> ``/articles/hello/``
            ``about.njk`` -> ``/about/``
            ``index.njk`` -> ``/``
        """
        rel = PurePosixPath(input_path)
        segments = list(rel.parent.parts)
        if rel.stem != "index":
            segments.append(rel.stem)
        path = "/".join(segments)
        return f"/{path}/" if path else "/"

    def output_path(self, url: str) -> Path:
        """Map a URL to its output file.

        URLs ending with a slash map to ``index.html`` inside that directory;
        anything else (``/feed.xml``) maps to the file itself.
        """
        rel = url.lstrip("/")
        if not rel or url.endswith("/"):
            return self.output_dir / rel / "index.html"
        return self.output_dir / rel


class DataCascade:
    """Merges data layers for a template.

    Order, lowest precedence first: global data, directory data files
    (``<dir>/<dirname>.yml``, outermost first), the template data file
    (``<stem>.yml`` beside the template), then the template's front matter.
    Layout front matter is merged later by the template engine, below the
    template's own front matter.
    """

    def __init__(self, input_dir: Path, global_data: dict[str, Any]):
        self.input_dir = input_dir
        self.global_data = global_data
        self._cache: dict[Path, dict[str, Any]] = {}

    def _read(self, path: Path) -> dict[str, Any]:
        if path not in self._cache:
            payload: dict[str, Any] = {}
            for suffix in DATA_SUFFIXES:
                candidate = path.with_name(path.name + suffix)
                if candidate.is_file():
                    with open(candidate, encoding="utf-8") as f:
                        loaded = yaml.safe_load(f) or {}
                    if not isinstance(loaded, dict):
                        raise ValueError(f"{candidate}: data file must be a mapping")
                    payload = loaded
                    break
            self._cache[path] = payload
        return self._cache[path]

    def merge(self, source: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        merged: dict[str, Any] = dict(self.global_data)
        rel_dir = source.parent.relative_to(self.input_dir)
        current = self.input_dir
        for part in rel_dir.parts:
            current = current / part
            merged.update(self._read(current / part))
        merged.update(self._read(source.with_suffix("")))
        merged.update(frontmatter)
        return merged


class ContentLoader:
    """Discovers templates and builds Page objects.

    Files inside the includes, layouts and data directories are skipped, as
    are files claimed by a passthrough rule.

    Attributes:
        settings: Build settings.
        cascade: Data cascade used for every page.
        url_deriver: URL deriver for default permalinks.
    """

    def __init__(
        self,
        settings: BuildSettings,
        global_data: dict[str, Any],
        is_passthrough: Callable[[str], bool] | None = None,
    ):
        self.settings = settings
        self.cascade = DataCascade(settings.input_dir, global_data)
        self.url_deriver = UrlDeriver(settings.output_dir)
        self._is_passthrough = is_passthrough or (lambda rel: False)

    def iter_sources(self, accept: Callable[[Path], bool]) -> Iterable[Path]:
        """Yield source files under the input root accepted by ``accept``.

        Args:
            accept: Predicate on the absolute path.

        Yields:
            Absolute paths, in sorted order.
        """
        input_dir = self.settings.input_dir
        for path in sorted(input_dir.rglob("*")):
            if not path.is_file():
                continue
            if any(path.is_relative_to(d) for d in self.settings.reserved_dirs):
                continue
            if self._is_passthrough(path.relative_to(input_dir).as_posix()):
                continue
            if accept(path):
                yield path

    def load(self) -> list[Page]:
        """Load every Markdown and Nunjucks-style template.

        Returns:
            List of Page objects in input path order.
        """
        return [
            self.build(path)
            for path in self.iter_sources(lambda p: is_markdown(p) or is_template(p))
        ]

    def build(self, path: Path) -> Page:
        """Build a Page object from a source file.

        Args:
            path: Absolute path to the template.

        Returns:
            Page with its merged data, default URL and output path.
        """
        input_path = path.relative_to(self.settings.input_dir).as_posix()
        frontmatter, body = extract_frontmatter(path.read_text(encoding="utf-8"))
        data = self.cascade.merge(path, frontmatter)

        if isinstance(data.get("date"), (date, datetime)):
            page_date = normalize_date(data["date"])
        else:
            page_date = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

        if data.get("permalink") is False:
            url = None
            output_path = None
        else:
            url = self.url_deriver.derive(input_path)
            output_path = self.url_deriver.output_path(url)

        if path.stem == "index":
            file_slug = PurePosixPath(input_path).parent.name
        else:
            file_slug = path.stem
        logger.debug("Loaded %s -> %s", input_path, url)
        return Page(
            source=path,
            input_path=input_path,
            body=body,
            data=data,
            url=url,
            output_path=output_path,
            date=page_date,
            file_slug=file_slug,
            template_format="md" if is_markdown(path) else "njk",
        )
