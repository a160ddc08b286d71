"""Protocol definitions for Inkwell.

These protocols describe the seams where behaviour is plugged in: passes of
the HTML transform pipeline and transforms applied to finished output files.
Any callable with the right signature satisfies them, so plain functions and
small classes can be mixed freely.
"""

from __future__ import annotations

from collections.abc import Awaitable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bs4 import BeautifulSoup


@runtime_checkable
class HtmlTransform(Protocol):
    """One pass of the HTML transform pipeline."""

    def __call__(
        self, document: BeautifulSoup, content: str, path: Path
    ) -> Awaitable[None] | None:
        """Mutate the parsed document in place.

        Args:
            document: Parsed page, as left by the previous passes.
            content: The page as rendered, before any pass ran.
            path: Output path of the page.

        Returns:
            None, or an awaitable the pipeline waits on before the next pass.
        """
        ...


@runtime_checkable
class OutputTransform(Protocol):
    """A transform applied to the text of every finished output file."""

    def __call__(self, content: str, path: Path) -> Awaitable[str] | str:
        """Return the transformed content.

        Args:
            content: Output text as produced so far.
            path: Output path; transforms check the extension themselves.

        Returns:
            The new content, directly or as an awaitable.
        """
        ...
