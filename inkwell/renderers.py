"""Markdown rendering for Inkwell.

This module wraps mistune to provide the three Markdown operations the
site needs:

- render: full block rendering for article bodies.
- render_inline: inline-only rendering for titles and excerpts, with no
  enclosing block element.
- remove: Markdown stripped down to plain text for summaries and meta
  descriptions.

Raw HTML inside Markdown passes through untouched. Fenced code blocks with a
known language are highlighted with Pygments.
"""

from __future__ import annotations

import html

import mistune
from bs4 import BeautifulSoup
from mistune.core import BlockState
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .utils import unique_slug

PLUGINS = ["strikethrough", "footnotes", "table", "url"]


class _HighlightRenderer(mistune.HTMLRenderer):
    """HTML renderer with heading ids and Pygments code highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_ids: set[str] = set()

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, document-unique id.

        Args:
            text: Heading HTML content.
            level: Heading level (1-6).
            **attrs: Additional attributes.

        Returns:
            HTML heading tag with id attribute.
        """
        plain = BeautifulSoup(text, "html.parser").get_text()
        heading_id = unique_slug(plain, self._heading_ids)
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block, highlighted when the language is known.

        Args:
            code: The code content.
            info: Info string of the fence; its first word is the language.

        Returns:
            ``pre``/``code`` markup carrying a ``language-*`` class.
        """
        lang = info.split()[0] if info and info.strip() else ""
        if not lang:
            return f"<pre><code>{html.escape(code, quote=False)}</code></pre>\n"
        try:
            lexer = get_lexer_by_name(lang, stripall=False)
        except ClassNotFound:
            body = html.escape(code, quote=False)
        else:
            body = highlight(code, lexer, HtmlFormatter(nowrap=True))
        lang_class = f"language-{html.escape(lang)}"
        return f'<pre class="{lang_class}"><code class="{lang_class}">{body}</code></pre>\n'


class MarkdownRenderer:
    """Renders Markdown text to HTML or plain text.

    A fresh mistune instance is created per call so heading ids are unique
    per document and no state leaks between pages.
    """

    def __init__(self, plugins: list[str] | None = None):
        self.plugins = list(PLUGINS if plugins is None else plugins)

    def _create(self) -> mistune.Markdown:
        return mistune.create_markdown(
            renderer=_HighlightRenderer(), plugins=self.plugins
        )

    def render(self, text: str) -> str:
        """Render Markdown to block-level HTML.

        Args:
            text: Markdown source.

        Returns:
            HTML fragment, e.g. ``<p><strong>x</strong></p>``.
        """
        return self._create()(text)

    def render_inline(self, text: str) -> str:
        """Render Markdown as inline HTML only.

        Block syntax is not interpreted, so no paragraph or other block
        element wraps the result.

        Args:
            text: Markdown source.

        Returns:
            Inline HTML, e.g. ``<strong>x</strong>``.
        """
        markdown = self._create()
        state = BlockState()
        tokens = markdown.inline(text, state.env)
        return markdown.renderer(tokens, state)

    def remove(self, text: str) -> str:
        """Strip Markdown syntax and return the plain text.

        Args:
            text: Markdown source.

        Returns:
            Text content with emphasis, links, headings and markup removed.
        """
        rendered = self.render(text)
        return BeautifulSoup(rendered, "html.parser").get_text().strip()


default_markdown_renderer = MarkdownRenderer()
