"""HTML and XML string utilities for Inkwell.

Functions:
    absolutize_links: Rewrite src/href attributes to fully qualified URLs.
    join_root_url: Join a base URL with a path.
    minify_html: Final whitespace/comment/attribute minification of pages.
    minify_xml: Whitespace-only minification of XML outputs.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

import htmlmin

# The negated classes exclude the characters of "(https://)", not the prefix
# itself, so any src/href value starting with another character is prefixed.
_LINK_ATTR_RE = re.compile(
    r'(src="[^(https://)])|(src="/)|(href="[^(https://)])|(href="/)'
)

_XML_GAP_RE = re.compile(r">\s+<")

HTMLMIN_OPTIONS = {
    "remove_comments": True,
    "remove_empty_space": False,
    "reduce_boolean_attributes": True,
    "remove_optional_attribute_quotes": False,
    "convert_charrefs": True,
}


def join_root_url(root_url: str, path: str) -> str:
    """Join the site domain and a site path with exactly one slash between.

    Args:
        root_url: Domain, optionally with a base path (``https://example.com/blog``).
        path: Site path, with or without its leading slash.

    Returns:
        Fully qualified URL; ``path`` unchanged when ``root_url`` is empty.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'

        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    return f"{root_url.rstrip('/')}/{path.lstrip('/')}"


def absolutize_links(content: str, domain: str, page_url: str) -> str:
    """Rewrite ``src="…"`` and ``href="…"`` values to fully qualified URLs.

    - Root-relative values (``/img.png``) are joined to the domain.
    - Scheme-relative values (``//cdn.example``) get the domain's scheme.
    - Values beginning with any other character outside ``(https:/)`` are
      treated as relative to the page and prefixed with domain + page URL.
    - Values beginning with ``h`` (``https://``, ``http://``) are unchanged.

    Args:
        content: HTML fragment, usually an article body for a feed.
        domain: Site domain such as ``https://example.com``.
        page_url: URL of the page the fragment belongs to, e.g. ``/posts/a/``.

    Returns:
        HTML with rewritten attributes.

    Examples:
        >>> absolutize_links('<img src="/img.png">', 'https://example.com', '/posts/a/')
        '<img src="https://example.com/img.png">'

        >>> absolutize_links('<img src="a.png">', 'https://example.com', '/posts/a/')
        '<img src="https://example.com/posts/a/a.png">'
    """
    domain = domain.rstrip("/")
    page_prefix = join_root_url(domain, page_url)
    scheme = urlsplit(domain).scheme or "https"

    def repl(match: re.Match) -> str:
        token = match.group(0)
        if token.endswith('="/'):
            attr = token[:-1]
            if match.string.startswith("/", match.end()):
                return f"{attr}{scheme}:/"
            return f"{attr}{domain}/"
        return f"{token[:-1]}{page_prefix}{token[-1]}"

    return _LINK_ATTR_RE.sub(repl, content)


def minify_html(content: str) -> str:
    """Minify a complete HTML page.

    Collapses boolean attributes and insignificant whitespace, decodes
    character references where safe and strips comments. No tags are added.

    Args:
        content: Serialized HTML page.

    Returns:
        Minified HTML.
    """
    return htmlmin.minify(content, **HTMLMIN_OPTIONS)


def minify_xml(content: str) -> str:
    """Minify XML by dropping whitespace between tags.

    Whitespace-only gaps between a ``>`` and a ``<`` are dropped everywhere,
    inside CDATA sections too; other text is kept as it is.

    Args:
        content: XML document.

    Returns:
        XML with inter-tag whitespace removed.
    """
    return _XML_GAP_RE.sub("><", content).strip()
