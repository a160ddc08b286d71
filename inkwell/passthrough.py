"""Passthrough copying for Inkwell.

Files matched by a passthrough rule are copied byte-for-byte from the input
root to the same relative path under the output root, and are never
processed as templates. A rule is one of:

- a path to a file (``robots.txt``) or directory (``images``), relative to
  the input root;
- a mapping ``{"glob": ..., "exclude_suffixes": [...]}`` selecting files by
  glob, minus the listed extensions.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .utils import glob_match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassthroughRule:
    """One passthrough rule.

    Attributes:
        pattern: Relative path, directory or glob pattern.
        exclude_suffixes: Extensions never matched by this rule.
    """

    pattern: str
    exclude_suffixes: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: Any) -> PassthroughRule:
        if isinstance(raw, str):
            return cls(pattern=raw.strip("/"))
        return cls(
            pattern=str(raw["glob"]).strip("/"),
            exclude_suffixes=tuple(s.lower() for s in raw.get("exclude_suffixes", ())),
        )

    def matches(self, rel: str) -> bool:
        """Check whether a relative file path falls under this rule."""
        if Path(rel).suffix.lower() in self.exclude_suffixes:
            return False
        if rel == self.pattern or rel.startswith(f"{self.pattern}/"):
            return True
        return glob_match(self.pattern, rel)


class PassthroughCopy:
    """Copies passthrough files from the input root to the output root.

    Attributes:
        input_dir: Input root.
        output_dir: Output root.
        rules: Parsed passthrough rules.
    """

    def __init__(self, input_dir: Path, output_dir: Path, rules: Iterable[Any]):
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.rules = [PassthroughRule.parse(rule) for rule in rules]

    def matches(self, rel: str) -> bool:
        """Check whether a path relative to the input root is passthrough."""
        return any(rule.matches(rel) for rule in self.rules)

    def iter_files(self) -> Iterable[Path]:
        """Yield every input file claimed by a rule, in sorted order."""
        for path in sorted(self.input_dir.rglob("*")):
            if path.is_file() and self.matches(path.relative_to(self.input_dir).as_posix()):
                yield path

    def run(self) -> list[Path]:
        """Copy all passthrough files.

        Returns:
            Output paths written.
        """
        written: list[Path] = []
        for source in self.iter_files():
            dest = self.output_dir / source.relative_to(self.input_dir)
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, dest)
            written.append(dest)
        logger.debug("Copied %d passthrough files", len(written))
        return written
