"""Command-line interface for Inkwell.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.
- serve: Run the development server with live reload.
- new: Scaffold a new draft article.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .config import ConfigError, load_settings
from .utils import slugify


@click.group()
@click.version_option(version=__version__, prog_name="inkwell")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
def cli(verbose: bool):
    """Inkwell blog builder."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    required=False,
    help="Directory to write the site to (overrides inkwell.yaml output_dir)",
)
def build(output: Path | None):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import BuildError, build_site

    try:
        result = build_site(project_root, output_dir_override=output)
    except BuildError as exc:
        try:
            rel_path = exc.source_path.relative_to(project_root)
        except ValueError:
            rel_path = exc.source_path
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None
    except (ConfigError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"Built {len(result.pages)} pages ({len(result.written)} files) "
        f"into {result.output_dir}"
    )


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides inkwell.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides inkwell.yaml ws_port)",
)
def serve(port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(project_root, http_port=port, ws_port=ws_port)
    server.start()


@cli.command()
@click.argument("title", required=False)
def new(title: str | None):
    """Scaffold a new draft article."""
    project_root = Path.cwd()
    settings = load_settings(project_root)
    if not settings.input_dir.exists():
        raise click.ClickException(
            f"No {settings.input_dir.name}/ directory found. "
            "Run this command from an Inkwell project root."
        )

    if not title:
        title = questionary.text(
            "Article title:",
            validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
            style=_questionary_style(),
        ).ask()
        if title is None:
            raise click.Abort()
    title = title.strip()

    slug = slugify(title)
    if not slug:
        raise click.ClickException(f"Cannot derive a slug from title: {title!r}")
    target_path = settings.input_dir / "articles" / slug / "index.md"
    if target_path.exists():
        raise click.ClickException(
            f"File already exists: {target_path.relative_to(project_root)}"
        )

    target_path.parent.mkdir(parents=True, exist_ok=True)
    target_path.write_text(_article_template(title), encoding="utf-8")
    click.echo(f"Created {target_path.relative_to(project_root)}")


def _article_template(title: str, now: datetime | None = None) -> str:
    """Return the starting text for a new draft article."""
    now = now or datetime.now(timezone.utc)
    frontmatter = {
        "title": title,
        "date": now.date(),
        "draft": True,
    }
    dumped = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    return f"---\n{dumped}---\n\n"


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
