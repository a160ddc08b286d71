"""Site building for Inkwell.

This module orchestrates a full build:

1. Load build settings, the global site record and global data.
2. Copy passthrough files.
3. Load templates, resolve permalinks and build collections.
4. Render every page through its layouts.
5. Finish each output concurrently: HTML transform pipeline, HTML
   minification, XML minification, then write. CSS and JS entry points are
   compiled alongside.

Key functions:
- build_site: Build the site for a project root.
- SiteBuilder: The build itself, for callers that already hold settings.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import TemplateSyntaxError

from .assets import AssetCompilerRegistry, create_default_registry
from .collections import PageCollection, build_collections
from .config import BuildSettings, SiteConfig, load_config, load_data, load_settings
from .content import ContentLoader, Page
from .html_utils import minify_html, minify_xml
from .passthrough import PassthroughCopy
from .protocols import OutputTransform
from .renderers import MarkdownRenderer
from .templates import TemplateEngine
from .transforms import HtmlTransformPipeline, default_transforms
from .utils import ensure_clean_dir, is_markdown, is_template

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        pages: All loaded pages, drafts included.
        output_dir: Directory where the site was built.
        collections: Named collections as exposed to templates.
        written: Every output file written, passthrough copies included.
    """

    pages: list[Page]
    output_dir: Path
    collections: dict[str, PageCollection] = field(default_factory=dict)
    written: list[Path] = field(default_factory=list)


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    if isinstance(exc, TemplateSyntaxError):
        return f"Template syntax error on line {exc.lineno}: {exc.message}"
    error_type = type(exc).__name__
    if error_type == "UndefinedError":
        return f"Undefined variable: {exc}"
    return f"{error_type}: {exc}"


def minify_html_output(content: str, path: Path) -> str:
    if str(path).endswith(".html"):
        return minify_html(content)
    return content


def minify_xml_output(content: str, path: Path) -> str:
    if str(path).endswith(".xml"):
        return minify_xml(content)
    return content


class SiteBuilder:
    """Builds a site from loaded settings and data.

    Attributes:
        settings: Build settings.
        site: Global site record.
        data: Global template data.
        markdown: Markdown renderer shared by templates, filters and passes.
        output_transforms: Transforms applied in order to every output.
        compilers: Compile steps for CSS and JS sources.
    """

    def __init__(
        self,
        settings: BuildSettings,
        site: SiteConfig,
        data: dict[str, Any],
        markdown: MarkdownRenderer | None = None,
        output_transforms: Sequence[OutputTransform] | None = None,
        compilers: AssetCompilerRegistry | None = None,
    ):
        self.settings = settings
        self.site = site
        self.data = data
        self.markdown = markdown or MarkdownRenderer()
        if output_transforms is None:
            output_transforms = [
                HtmlTransformPipeline(
                    default_transforms(settings.output_dir, self.markdown)
                ),
                minify_html_output,
                minify_xml_output,
            ]
        self.output_transforms = list(output_transforms)
        self.compilers = compilers or create_default_registry(settings)

    async def build(self, clean_output: bool = True) -> BuildResult:
        """Run the full build.

        Args:
            clean_output: Whether to wipe the output directory first.

        Returns:
            BuildResult describing what was built.
        """
        output_dir = self.settings.output_dir
        if clean_output:
            ensure_clean_dir(output_dir)
        else:
            output_dir.mkdir(parents=True, exist_ok=True)

        passthrough = PassthroughCopy(
            self.settings.input_dir, output_dir, self.settings.passthrough
        )
        written = passthrough.run()

        loader = ContentLoader(self.settings, self.data, passthrough.matches)
        engine = TemplateEngine(self.settings, self.site, self.data, self.markdown)
        pages = []
        for path in loader.iter_sources(self._is_template):
            page = self._guard(path, loader.build, path)
            self._guard(path, engine.apply_permalink, page, loader.url_deriver)
            engine.bind(page)
            pages.append(page)

        collections = build_collections(pages)
        engine.update_collections(collections)

        # Render everything before creating any finishing coroutine.
        rendered = [
            (page, self._guard(page.source, engine.render_page, page))
            for page in pages
            if page.output_path is not None
        ]
        jobs = [self._finish(page.source, html, page.output_path) for page, html in rendered]
        for source in loader.iter_sources(lambda p: self.compilers.get_compiler(p) is not None):
            jobs.append(self._compile_asset(source))

        results = await asyncio.gather(*jobs)
        written.extend(path for path in results if path is not None)
        logger.info("Wrote %d files to %s", len(written), output_dir)
        return BuildResult(
            pages=pages,
            output_dir=output_dir,
            collections=collections,
            written=written,
        )

    def _is_template(self, path: Path) -> bool:
        return is_markdown(path) or is_template(path)

    def _guard(self, source: Path, func, *args):
        try:
            return func(*args)
        except BuildError:
            raise
        except Exception as exc:
            raise BuildError(source, _format_error_message(exc), exc) from exc

    async def apply_output_transforms(self, content: str, path: Path) -> str:
        """Run every output transform, in order, over one output file."""
        for transform in self.output_transforms:
            result = transform(content, path)
            if inspect.isawaitable(result):
                result = await result
            content = result
        return content

    async def _finish(self, source: Path, content: str, output_path: Path) -> Path:
        try:
            content = await self.apply_output_transforms(content, output_path)
        except Exception as exc:
            raise BuildError(source, _format_error_message(exc), exc) from exc
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
        logger.debug("Wrote %s", output_path)
        return output_path

    async def _compile_asset(self, source: Path) -> Path | None:
        compiler = self.compilers.get_compiler(source)
        try:
            compiled = await compiler.compile(source.read_text(encoding="utf-8"), source)
        except Exception as exc:
            raise BuildError(source, _format_error_message(exc), exc) from exc
        if compiled is None:
            return None
        output_path = self.settings.output_dir / source.relative_to(self.settings.input_dir)
        return await self._finish(source, compiled, output_path)


def build_site(
    project_root: Path,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire site.

    Args:
        project_root: Root directory of the project.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Optional path to write the build output instead of
            the configured output directory.

    Returns:
        BuildResult containing all pages, output directory and written files.
    """
    settings = load_settings(project_root, output_dir_override)
    if not settings.input_dir.exists():
        raise FileNotFoundError(f"Expected input directory at {settings.input_dir}")
    site = load_config(settings.data_dir)
    data = load_data(settings.data_dir)
    builder = SiteBuilder(settings, site, data)
    return asyncio.run(builder.build(clean_output=clean_output))
