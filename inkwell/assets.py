"""Asset compile steps for Inkwell.

CSS and JS are template formats with their own compile step. A compiler
receives the source text and path and returns the compiled output, or None
to skip the file entirely (no output is written).

Key components:
- StylesheetCompiler: Allow-listed entry points through the CSS chain.
- ScriptCompiler: The single script entry point bundled with esbuild.
- AssetCompilerRegistry: Selects the compiler for a source file.
- process_css: The CSS chain (imports, media ranges, prefixes, minify).
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

import csscompressor
from packaging import version
from rjsmin import jsmin

from .config import BuildSettings
from .executable_utils import find_executable, run_tool

logger = logging.getLogger(__name__)

ESBUILD_TARGET = "es2020"

# csscompressor<=0.9.5 strips whitespace inside url(), breaking SVG data URIs.
if version.parse(csscompressor.__version__) <= version.parse("0.9.5"):
    _preserve_call_tokens = csscompressor._preserve_call_tokens

    def _preserve_url_whitespace(*args, **kwargs):
        if args[1] is csscompressor._url_re:
            kwargs["remove_ws"] = False
        return _preserve_call_tokens(*args, **kwargs)

    csscompressor._preserve_call_tokens = _preserve_url_whitespace

_IMPORT_RE = re.compile(
    r"""@import\s+(?:url\(\s*)?(?P<quote>["']?)(?P<target>[^"')\s;]+)(?P=quote)\s*\)?\s*(?P<media>[^;]*);"""
)
_REMOTE_PREFIXES = ("http://", "https://", "//")

_FEATURES = r"(?:width|height)"
_VALUE = r"[^()<>=\s]+"
_RANGE_RE = re.compile(
    rf"\(\s*(?P<low>{_VALUE})\s*(?P<op1><=?)\s*(?P<feature>{_FEATURES})\s*(?P<op2><=?)\s*(?P<high>{_VALUE})\s*\)"
)
_FEATURE_FIRST_RE = re.compile(
    rf"\(\s*(?P<feature>{_FEATURES})\s*(?P<op>>=|<=|>|<)\s*(?P<value>{_VALUE})\s*\)"
)
_VALUE_FIRST_RE = re.compile(
    rf"\(\s*(?P<value>{_VALUE})\s*(?P<op>>=|<=|>|<)\s*(?P<feature>{_FEATURES})\s*\)"
)
_NUMBER_RE = re.compile(r"^(?P<number>-?\d*\.?\d+)(?P<unit>[a-z%]*)$")
_FLIP = {"<": ">", "<=": ">=", ">": "<", ">=": "<="}

# Properties still shipped unprefixed-only by some supported browsers.
VENDOR_PREFIXES: dict[str, tuple[str, ...]] = {
    "appearance": ("-webkit-", "-moz-"),
    "backdrop-filter": ("-webkit-",),
    "box-decoration-break": ("-webkit-",),
    "hyphens": ("-webkit-",),
    "initial-letter": ("-webkit-",),
    "mask-image": ("-webkit-",),
    "mask-position": ("-webkit-",),
    "mask-repeat": ("-webkit-",),
    "mask-size": ("-webkit-",),
    "text-size-adjust": ("-webkit-", "-moz-"),
    "user-select": ("-webkit-",),
}
_DECLARATION_RE = re.compile(
    r"(?P<lead>[{;]\s*)(?P<prop>"
    + "|".join(re.escape(p) for p in sorted(VENDOR_PREFIXES, key=len, reverse=True))
    + r")\s*:\s*(?P<value>[^;{}]+)"
)


class AssetBuildError(Exception):
    """Raised when an external asset tool fails.

    Attributes:
        source_path: Entry point being compiled.
        message: Tool output describing the failure.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


def inline_imports(content: str, path: Path, seen: set[Path] | None = None) -> str:
    """Replace local ``@import`` rules with the imported stylesheets.

    Imports resolve relative to the importing file and are followed
    recursively. A file already inlined is dropped on later imports. Imports
    carrying a media query are wrapped in ``@media``; remote imports stay.

    Args:
        content: Stylesheet source.
        path: Path of the stylesheet, used to resolve relative imports.
        seen: Files already inlined in this bundle.

    Returns:
        Stylesheet with local imports inlined.

    Raises:
        FileNotFoundError: If an imported file does not exist.
    """
    if seen is None:
        seen = {path.resolve()}

    def repl(match: re.Match) -> str:
        target = match.group("target")
        if target.startswith(_REMOTE_PREFIXES):
            return match.group(0)
        imported = (path.parent / target).resolve()
        if imported in seen:
            return ""
        seen.add(imported)
        inner = inline_imports(imported.read_text(encoding="utf-8"), imported, seen)
        media = match.group("media").strip()
        if media:
            return f"@media {media}{{{inner}}}"
        return inner

    return _IMPORT_RE.sub(repl, content)


def _shift(value: str, delta: float) -> str:
    match = _NUMBER_RE.match(value)
    if not match:
        return value
    number = float(match.group("number")) + delta
    return f"{number:g}{match.group('unit')}"


def _bound(feature: str, op: str, value: str) -> str:
    if op == ">=":
        return f"(min-{feature}: {value})"
    if op == ">":
        return f"(min-{feature}: {_shift(value, 0.001)})"
    if op == "<=":
        return f"(max-{feature}: {value})"
    return f"(max-{feature}: {_shift(value, -0.001)})"


def lower_media_ranges(content: str) -> str:
    """Rewrite media query range syntax into min-/max- features.

    Examples:
        ``(width >= 600px)`` -> ``(min-width: 600px)``
        ``(400px <= width < 800px)`` -> ``(min-width: 400px) and (max-width: 799.999px)``
    """

    def range_repl(match: re.Match) -> str:
        feature = match.group("feature")
        low = _bound(feature, _FLIP[match.group("op1")], match.group("low"))
        high = _bound(feature, match.group("op2"), match.group("high"))
        return f"{low} and {high}"

    def feature_first(match: re.Match) -> str:
        return _bound(match.group("feature"), match.group("op"), match.group("value"))

    def value_first(match: re.Match) -> str:
        return _bound(
            match.group("feature"), _FLIP[match.group("op")], match.group("value")
        )

    content = _RANGE_RE.sub(range_repl, content)
    content = _FEATURE_FIRST_RE.sub(feature_first, content)
    return _VALUE_FIRST_RE.sub(value_first, content)


def add_vendor_prefixes(content: str) -> str:
    """Insert vendor-prefixed copies before declarations that need them.

    A prefix already declared in the same block is not duplicated.
    """

    def repl(match: re.Match) -> str:
        prop = match.group("prop")
        value = match.group("value").rstrip()
        block_start = match.string.rfind("{", 0, match.start("prop"))
        block_end = match.string.find("}", match.end())
        block = match.string[block_start : block_end if block_end != -1 else None]
        prefixed = "".join(
            f"{prefix}{prop}:{value};"
            for prefix in VENDOR_PREFIXES[prop]
            if f"{prefix}{prop}" not in block
        )
        return f"{match.group('lead')}{prefixed}{prop}:{value}"

    return _DECLARATION_RE.sub(repl, content)


def process_css(content: str, path: Path) -> str:
    """Run a stylesheet through the full CSS chain.

    Args:
        content: Stylesheet source.
        path: Stylesheet path, for import resolution.

    Returns:
        Import-inlined, range-lowered, prefixed and minified CSS.
    """
    css = inline_imports(content, path)
    css = lower_media_ranges(css)
    css = add_vendor_prefixes(css)
    return csscompressor.compress(css)


def process_css_file(path: Path) -> str:
    """Read a stylesheet and run it through the CSS chain."""
    return process_css(path.read_text(encoding="utf-8"), path)


class BaseAssetCompiler(ABC):
    """Base class for template formats with a custom compile step."""

    def __init__(self, settings: BuildSettings):
        self.settings = settings

    @property
    @abstractmethod
    def extension(self) -> str:
        """Source and output file extension, e.g. ``.css``."""
        ...

    def can_compile(self, path: Path) -> bool:
        return path.suffix.lower() == self.extension

    def relative(self, path: Path) -> str:
        return path.relative_to(self.settings.input_dir).as_posix()

    @abstractmethod
    async def compile(self, content: str, path: Path) -> str | None:
        """Compile a source file.

        Args:
            content: Source text.
            path: Absolute source path.

        Returns:
            Compiled output, or None when the file produces no output.
        """
        ...


class StylesheetCompiler(BaseAssetCompiler):
    """Compiles allow-listed stylesheet entry points; skips everything else."""

    @property
    def extension(self) -> str:
        return ".css"

    async def compile(self, content: str, path: Path) -> str | None:
        if self.relative(path) not in self.settings.styles:
            return None
        return process_css(content, path)


class ScriptCompiler(BaseAssetCompiler):
    """Bundles and minifies the script entry point with esbuild.

    Falls back to rjsmin (no bundling) when esbuild is not installed.
    """

    @property
    def extension(self) -> str:
        return ".js"

    async def compile(self, content: str, path: Path) -> str | None:
        rel = self.relative(path)
        if rel != self.settings.script:
            return None

        esbuild = find_executable("esbuild", self.settings.project_root)
        if not esbuild:
            logger.warning(
                "esbuild not found; minifying %s without bundling. "
                "Install with `npm install -D esbuild`.",
                rel,
            )
            return jsmin(content)

        cmd = [
            esbuild,
            str(path),
            "--bundle",
            "--minify",
            f"--target={ESBUILD_TARGET}",
        ]
        result = await run_tool(cmd)
        if result.returncode != 0:
            raise AssetBuildError(path, result.stderr.strip())
        return result.stdout


class AssetCompilerRegistry:
    """Registry mapping source files to their compile step."""

    def __init__(self):
        self._compilers: list[BaseAssetCompiler] = []

    def register(self, compiler: BaseAssetCompiler) -> None:
        self._compilers.append(compiler)

    @property
    def extensions(self) -> set[str]:
        return {c.extension for c in self._compilers}

    def get_compiler(self, path: Path) -> BaseAssetCompiler | None:
        """Get the compiler for a file, or None if it is not an asset format."""
        for compiler in self._compilers:
            if compiler.can_compile(path):
                return compiler
        return None


def create_default_registry(settings: BuildSettings) -> AssetCompilerRegistry:
    """Create a registry with the CSS and JS compilers."""
    registry = AssetCompilerRegistry()
    registry.register(StylesheetCompiler(settings))
    registry.register(ScriptCompiler(settings))
    return registry
