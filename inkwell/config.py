"""Configuration loading for Inkwell.

Two records are loaded once per build and treated as read-only afterwards:

- BuildSettings: directory conventions, asset entry points and passthrough
  rules. Defaults live in DEFAULT_SETTINGS; an optional ``inkwell.yaml`` at
  the project root overrides individual keys.
- SiteConfig: the global site record read from ``<data>/global.yml``. It
  must declare ``domain``, which absolute-URL rewriting depends on.

Global template data (every YAML file in the data directory) is loaded by
load_data and keyed by file stem, so ``global.yml`` is reachable in
templates as ``global``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

SETTINGS_FILE = "inkwell.yaml"
GLOBAL_DATA_FILE = "global.yml"
DATA_SUFFIXES = (".yml", ".yaml")

DEFAULT_SETTINGS: dict[str, Any] = {
    "input_dir": "src",
    "output_dir": "dist",
    "includes_dir": "includes",
    "layouts_dir": "layouts",
    "data_dir": "data",
    "styles": [
        "styles/index.css",
        "styles/light.css",
        "styles/dark.css",
    ],
    "script": "scripts/index.js",
    "passthrough": [
        "robots.txt",
        "images",
        "fonts",
        "talks",
        {"glob": "articles/**/*", "exclude_suffixes": [".md", ".yml"]},
    ],
    "port": 8080,
    "ws_port": None,
}


class ConfigError(Exception):
    """Raised when a configuration file is missing required values."""


@dataclass(frozen=True)
class BuildSettings:
    """Directory conventions and per-format build settings.

    Attributes:
        project_root: Project root every other directory is relative to.
        input_dir: Source root (``src``).
        output_dir: Output root (``dist``).
        includes_dir: Include templates, relative to the input root.
        layouts_dir: Layout templates, relative to the input root.
        data_dir: Global data files, relative to the input root.
        styles: Stylesheet entry points compiled to CSS, relative to the input root.
        script: The single script entry point, relative to the input root.
        passthrough: Passthrough rules (paths, directories or glob mappings).
        port: Dev server HTTP port.
        ws_port: Dev server live-reload port (defaults to ``port + 1``).
    """

    project_root: Path
    input_dir: Path
    output_dir: Path
    includes_dir: Path
    layouts_dir: Path
    data_dir: Path
    styles: tuple[str, ...]
    script: str
    passthrough: tuple[Any, ...]
    port: int = 8080
    ws_port: int | None = None

    @property
    def reserved_dirs(self) -> tuple[Path, ...]:
        """Directories under the input root that never produce output."""
        return (self.includes_dir, self.layouts_dir, self.data_dir)


@dataclass(frozen=True)
class SiteConfig:
    """Global site record loaded from ``global.yml``.

    Attributes:
        domain: Scheme and host of the published site, e.g. ``https://example.com``.
        values: Every key declared in the file, ``domain`` included.
    """

    domain: str
    values: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.values[key]


def load_settings(
    project_root: Path, output_dir_override: Path | None = None
) -> BuildSettings:
    """Load build settings, applying ``inkwell.yaml`` over the defaults.

    Args:
        project_root: Root directory of the project.
        output_dir_override: Optional output directory replacing the configured one.

    Returns:
        Resolved BuildSettings with absolute directories.
    """
    merged = dict(DEFAULT_SETTINGS)
    settings_path = project_root / SETTINGS_FILE
    if settings_path.exists():
        with open(settings_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{settings_path}: expected a mapping at the top level")
        merged.update(loaded)
        logger.debug("Loaded settings overrides from %s", settings_path)

    input_dir = project_root / merged["input_dir"]
    output_dir = output_dir_override or project_root / merged["output_dir"]
    return BuildSettings(
        project_root=project_root,
        input_dir=input_dir,
        output_dir=output_dir,
        includes_dir=input_dir / merged["includes_dir"],
        layouts_dir=input_dir / merged["layouts_dir"],
        data_dir=input_dir / merged["data_dir"],
        styles=tuple(merged["styles"]),
        script=merged["script"],
        passthrough=tuple(merged["passthrough"]),
        port=int(merged["port"]),
        ws_port=merged.get("ws_port"),
    )


def load_config(data_dir: Path) -> SiteConfig:
    """Load the global site record from ``global.yml``.

    Args:
        data_dir: Global data directory.

    Returns:
        SiteConfig with the configured domain.

    Raises:
        FileNotFoundError: If ``global.yml`` does not exist.
        ConfigError: If the file is not a mapping or lacks ``domain``.
    """
    path = data_dir / GLOBAL_DATA_FILE
    with open(path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    domain = loaded.get("domain")
    if not domain:
        raise ConfigError(f"{path}: missing required 'domain'")
    return SiteConfig(domain=str(domain).rstrip("/"), values=loaded)


def load_data(data_dir: Path) -> dict[str, Any]:
    """Load global template data from YAML files in the data directory.

    Args:
        data_dir: Global data directory.

    Returns:
        Dictionary mapping each file stem to its parsed content.
    """
    data: dict[str, Any] = {}
    if not data_dir.exists():
        return data
    for path in sorted(data_dir.iterdir()):
        if path.suffix not in DATA_SUFFIXES:
            continue
        with open(path, encoding="utf-8") as f:
            data[path.stem] = yaml.safe_load(f)
    return data
