"""Template rendering engine for Inkwell.

This module uses Jinja2 as the Nunjucks-style template engine. Templates,
layouts and includes share one environment:

- ``.njk`` templates are rendered directly.
- ``.md`` templates are rendered as templates first, then as Markdown.
- Layouts live in the layouts directory, may carry front matter of their
  own (including a further ``layout``) and receive the page body as
  ``content``.

Key class:
- TemplateEngine: Owns the environment, filters, globals and page rendering.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template
from markupsafe import Markup
from pygments.formatters import HtmlFormatter

from .collections import PageCollection
from .config import BuildSettings, SiteConfig
from .content import Page, UrlDeriver, extract_frontmatter
from .filters import create_filters
from .renderers import MarkdownRenderer, default_markdown_renderer

logger = logging.getLogger(__name__)

LAYOUT_SUFFIXES = ("", ".njk", ".html")


class TemplateError(Exception):
    """Raised for layout resolution failures and circular content references."""


class FrontMatterLoader(FileSystemLoader):
    """File system loader that strips front matter before compiling."""

    def get_source(self, environment: Environment, template: str):
        source, filename, uptodate = super().get_source(environment, template)
        _, body = extract_frontmatter(source)
        return body, filename, uptodate


def pygments_css(selector: str = "pre") -> str:
    """Return Pygments CSS styles for highlighted code under ``selector``."""
    return HtmlFormatter().get_style_defs(selector)


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        settings: Build settings (directory conventions).
        site: Global site record.
        data: Global template data keyed by data file stem.
        markdown: Shared Markdown renderer.
        env: Jinja2 environment.
        collections: Named collections exposed as ``collections``.
    """

    def __init__(
        self,
        settings: BuildSettings,
        site: SiteConfig,
        data: dict[str, Any],
        markdown: MarkdownRenderer | None = None,
    ):
        self.settings = settings
        self.site = site
        self.data = data
        self.markdown = markdown or default_markdown_renderer
        self.env = Environment(
            loader=FrontMatterLoader(
                [
                    settings.layouts_dir,
                    settings.includes_dir,
                    settings.input_dir,
                ]
            ),
            autoescape=True,
            enable_async=False,
        )
        self.env.filters.update(
            create_filters(site, self.markdown, settings.project_root)
        )
        self.collections: dict[str, PageCollection] = {}
        self._rendering: set[str] = set()
        self._install_globals()

    def _install_globals(self) -> None:
        self.env.globals.update(self.data)
        self.env.globals["collections"] = self.collections
        self.env.globals["pygments_css"] = pygments_css

    def update_collections(self, collections: dict[str, PageCollection]) -> None:
        """Replace the collections visible to templates."""
        self.collections = collections
        self.env.globals["collections"] = collections

    def context(self, page: Page, data: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build the template context for a page.

        Args:
            page: Page being rendered.
            data: Data to expose at the top level; defaults to the page data.

        Returns:
            Context with page data, ``page`` and ``collections``.
        """
        context = dict(page.data if data is None else data)
        context["page"] = page
        context["collections"] = self.collections
        return context

    def apply_permalink(self, page: Page, url_deriver: UrlDeriver) -> None:
        """Resolve a ``permalink`` string from front matter into URL and output path.

        The permalink is itself rendered as a template against the page data.
        """
        permalink = page.data.get("permalink")
        if not isinstance(permalink, str):
            return
        url = self.env.from_string(permalink).render(self.context(page)).strip()
        if not url.startswith("/"):
            url = f"/{url}"
        page.url = url
        page.output_path = url_deriver.output_path(url)

    def bind(self, page: Page) -> None:
        """Let ``page.content`` render lazily through this engine."""
        page._render = self.render_content

    def render_content(self, page: Page) -> str:
        """Render a page body without layouts.

        Args:
            page: Page to render.

        Returns:
            Body HTML (Markdown already converted for ``.md`` pages).

        Raises:
            TemplateError: If rendering the page needs its own content.
        """
        if page.input_path in self._rendering:
            raise TemplateError(f"{page.input_path}: circular content reference")
        self._rendering.add(page.input_path)
        try:
            body = self.env.from_string(page.body).render(self.context(page))
            if page.template_format == "md":
                body = self.markdown.render(body)
            return Markup(body)
        finally:
            self._rendering.discard(page.input_path)

    def _find_layout(self, name: str) -> tuple[str, Path]:
        for suffix in LAYOUT_SUFFIXES:
            candidate = self.settings.layouts_dir / f"{name}{suffix}"
            if candidate.is_file():
                return candidate.relative_to(self.settings.layouts_dir).as_posix(), candidate
        raise TemplateError(f"layout not found: {name}")

    def layout_chain(self, name: str | None) -> list[tuple[Template, dict[str, Any]]]:
        """Resolve a layout and every layout it extends, innermost first.

        Args:
            name: Layout name from front matter.

        Returns:
            List of (template, layout front matter) pairs.
        """
        chain: list[tuple[Template, dict[str, Any]]] = []
        seen: set[str] = set()
        while name:
            if name in seen:
                raise TemplateError(f"layout loop through {name}")
            seen.add(name)
            template_name, path = self._find_layout(name)
            frontmatter, _ = extract_frontmatter(path.read_text(encoding="utf-8"))
            chain.append((self.env.get_template(template_name), frontmatter))
            name = frontmatter.get("layout")
        return chain

    def render_page(self, page: Page) -> str:
        """Render a page with its layouts.

        Args:
            page: Page to render.

        Returns:
            Complete output text.
        """
        rendered = page.content
        chain = self.layout_chain(page.data.get("layout"))
        if not chain:
            return rendered

        data: dict[str, Any] = {}
        for _, frontmatter in reversed(chain):
            data.update(frontmatter)
        data.update(page.data)
        context = self.context(page, data)
        for template, _ in chain:
            rendered = template.render(context, content=Markup(rendered))
        return rendered

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        """Render a template string.

        Args:
            template: Template string to render.
            context: Variables to make available in the template.

        Returns:
            Rendered string.
        """
        return self.env.from_string(template).render(**context)
