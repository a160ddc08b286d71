"""HTML transform pipeline for Inkwell.

Every ``.html`` output is parsed once with BeautifulSoup and handed to an
ordered list of passes. Each pass mutates the document in place and may be
a coroutine; passes run strictly one after another, so each sees the
document as left by all passes before it. An exception from a pass aborts
the build of that page.

Passes:
- HeadingAnchors: ids and self-links for section headings.
- DemoEmbeds: demo iframes expanded into full embeds.
- FigureCaptions: captioned images wrapped in figure/figcaption.
- ImageAttributes: lazy loading and intrinsic dimensions for images.
- CodeBlocks: accessibility and language markers on highlighted code.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup, NavigableString, Tag
from PIL import Image

from .protocols import HtmlTransform
from .renderers import MarkdownRenderer, default_markdown_renderer
from .utils import unique_slug

logger = logging.getLogger(__name__)

HEADING_TAGS = ["h2", "h3", "h4", "h5", "h6"]
RASTER_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".avif"}


class HtmlTransformPipeline:
    """Applies an ordered sequence of passes to HTML outputs.

    Attributes:
        passes: Passes in execution order.
    """

    def __init__(self, passes: Sequence[HtmlTransform]):
        self.passes = list(passes)

    async def __call__(self, content: str, path: Path | str | None) -> str:
        """Transform one output file.

        Args:
            content: Rendered page.
            path: Output path; only paths ending in ``.html`` are transformed.

        Returns:
            The serialized, transformed document, or ``content`` unchanged.
        """
        if not path or not str(path).endswith(".html"):
            return content
        document = BeautifulSoup(content, "html.parser")
        for transform in self.passes:
            result = transform(document, content, Path(path))
            if inspect.isawaitable(result):
                await result
        return str(document)


def _is_blank(node) -> bool:
    return isinstance(node, NavigableString) and not node.strip()


class HeadingAnchors:
    """Gives section headings an id and appends a link to themselves."""

    def __init__(self, link_class: str = "heading-anchor"):
        self.link_class = link_class

    def __call__(self, document: BeautifulSoup, content: str, path: Path) -> None:
        taken = {tag["id"] for tag in document.find_all(id=True)}
        for heading in document.find_all(HEADING_TAGS):
            if heading.find("a", class_=self.link_class):
                continue
            text = heading.get_text(" ", strip=True)
            if not heading.get("id"):
                heading["id"] = unique_slug(text, taken)
            link = document.new_tag(
                "a",
                attrs={
                    "class": self.link_class,
                    "href": f"#{heading['id']}",
                    "aria-label": f"Link to section: {text}",
                },
            )
            link.string = "#"
            heading.append(link)


class DemoEmbeds:
    """Expands demo iframes into a full embed.

    A demo is an ``iframe`` with class ``demo`` or a ``src`` under
    ``demos/``. It is wrapped in ``div.demo`` together with a link opening
    the demo in a new tab, and loads lazily.
    """

    def __init__(self, prefix: str = "demos/", link_text: str = "Open demo in a new tab"):
        self.prefix = prefix
        self.link_text = link_text

    def _is_demo(self, frame: Tag) -> bool:
        if frame.parent is not None and "demo" in (frame.parent.get("class") or []):
            return False
        src = frame.get("src", "")
        return "demo" in (frame.get("class") or []) or src.lstrip("./").startswith(self.prefix)

    def __call__(self, document: BeautifulSoup, content: str, path: Path) -> None:
        for frame in document.find_all("iframe"):
            if not self._is_demo(frame):
                continue
            src = frame.get("src", "")
            frame["class"] = ["demo__frame"]
            frame["loading"] = "lazy"
            frame.attrs.setdefault("title", "Demo")

            wrapper = document.new_tag("div", attrs={"class": "demo"})
            link = document.new_tag(
                "a",
                attrs={
                    "class": "demo__link",
                    "href": src,
                    "target": "_blank",
                    "rel": "noopener",
                },
            )
            link.string = self.link_text

            # A lone iframe in a paragraph replaces the paragraph.
            target = frame
            parent = frame.parent
            if parent is not None and parent.name == "p" and all(
                child is frame or _is_blank(child) for child in parent.contents
            ):
                target = parent
            target.replace_with(wrapper)
            wrapper.append(frame)
            wrapper.append(link)


class FigureCaptions:
    """Turns a paragraph holding only a captioned image into a figure.

    The image's alt text becomes the caption, rendered as inline Markdown.
    """

    def __init__(self, markdown: MarkdownRenderer | None = None):
        self.markdown = markdown or default_markdown_renderer

    def __call__(self, document: BeautifulSoup, content: str, path: Path) -> None:
        for paragraph in document.find_all("p"):
            children = [c for c in paragraph.contents if not _is_blank(c)]
            if len(children) != 1 or not isinstance(children[0], Tag):
                continue
            image = children[0]
            if image.name != "img":
                continue
            alt = (image.get("alt") or "").strip()
            if not alt:
                continue

            figure = document.new_tag("figure")
            caption = document.new_tag("figcaption")
            caption_html = self.markdown.render_inline(alt)
            for node in list(BeautifulSoup(caption_html, "html.parser").contents):
                caption.append(node)
            paragraph.replace_with(figure)
            figure.append(image.extract())
            figure.append(caption)


def _read_size(path: Path) -> tuple[int, int]:
    with Image.open(path) as img:
        return img.size


class ImageAttributes:
    """Adds loading hints and intrinsic dimensions to images.

    Dimensions are read with Pillow from the file in the output directory,
    so passthrough copies must be in place before pages are finished.
    Remote images and non-raster formats only get the loading hints.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def resolve(self, src: str, path: Path) -> Path | None:
        """Resolve an image ``src`` to a file in the output directory.

        Args:
            src: Value of the ``src`` attribute.
            path: Output path of the page holding the image.

        Returns:
            Local file path, or None for remote and data URLs.
        """
        parts = urlsplit(src)
        if parts.scheme or parts.netloc or not parts.path:
            return None
        local = unquote(parts.path)
        if local.startswith("/"):
            return self.output_dir / local.lstrip("/")
        return path.parent / local

    async def __call__(self, document: BeautifulSoup, content: str, path: Path) -> None:
        for image in document.find_all("img"):
            image.attrs.setdefault("loading", "lazy")
            image.attrs.setdefault("decoding", "async")
            if image.get("width") and image.get("height"):
                continue
            file = self.resolve(image.get("src", ""), path)
            if file is None or file.suffix.lower() not in RASTER_SUFFIXES:
                continue
            if not file.is_file():
                logger.warning("%s: image not found: %s", path, image.get("src"))
                continue
            width, height = await asyncio.to_thread(_read_size, file)
            image["width"] = str(width)
            image["height"] = str(height)


class CodeBlocks:
    """Marks highlighted code blocks for styling and keyboard scrolling.

    The ``language-*`` class of the ``code`` element is copied to ``pre``,
    which also gets ``tabindex="0"`` and ``data-language``.
    """

    def __call__(self, document: BeautifulSoup, content: str, path: Path) -> None:
        for pre in document.find_all("pre"):
            code = pre.find("code", recursive=False)
            if code is None:
                continue
            languages = [c for c in code.get("class") or [] if c.startswith("language-")]
            if not languages:
                continue
            classes = pre.get("class") or []
            for lang_class in languages:
                if lang_class not in classes:
                    classes.append(lang_class)
            pre["class"] = classes
            pre["tabindex"] = "0"
            pre["data-language"] = languages[0].removeprefix("language-")


def default_transforms(
    output_dir: Path, markdown: MarkdownRenderer | None = None
) -> list[HtmlTransform]:
    """Return the default passes in execution order."""
    return [
        HeadingAnchors(),
        DemoEmbeds(),
        FigureCaptions(markdown),
        ImageAttributes(output_dir),
        CodeBlocks(),
    ]
