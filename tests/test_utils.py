import asyncio
import subprocess
from pathlib import Path

from inkwell.executable_utils import find_executable, run_tool
from inkwell.utils import (
    ensure_clean_dir,
    glob_match,
    is_markdown,
    is_template,
    slugify,
    unique_slug,
)


def test_slugify_and_unique_slug():
    assert slugify("Hello, World!") == "hello-world"
    assert slugify("  CSS   Nesting ") == "css-nesting"
    assert slugify("snake_case title") == "snake-case-title"

    taken = set()
    assert unique_slug("Intro", taken) == "intro"
    assert unique_slug("Intro", taken) == "intro-1"
    assert unique_slug("Intro", taken) == "intro-2"
    assert unique_slug("???", taken) == "section"
    assert taken == {"intro", "intro-1", "intro-2", "section"}


def test_glob_match_segments():
    assert glob_match("articles/*/index.md", "articles/hello/index.md")
    assert not glob_match("articles/*/index.md", "articles/a/b/index.md")
    assert not glob_match("articles/*/index.md", "articles/hello/index.mdx")
    assert glob_match("articles/**/*", "articles/hello/cover.png")
    assert glob_match("articles/**/*", "articles/hello/assets/cover.png")
    assert not glob_match("articles/**/*", "pages/about/index.njk")
    assert glob_match("pages/?04/index.njk", "pages/404/index.njk")


def test_path_helpers(tmp_path):
    assert is_markdown(Path("a/index.md"))
    assert is_markdown(Path("a/INDEX.MD"))
    assert not is_markdown(Path("a/index.njk"))
    assert is_template(Path("a/index.njk"))
    assert not is_template(Path("a/index.html"))

    target = tmp_path / "dist"
    (target / "nested").mkdir(parents=True)
    (target / "nested" / "old.html").write_text("x", encoding="utf-8")
    ensure_clean_dir(target)
    assert target.exists()
    assert list(target.iterdir()) == []


def test_find_executable_prefers_path_then_node_modules(monkeypatch, tmp_path):
    monkeypatch.setattr("shutil.which", lambda name: None)
    assert find_executable("esbuild", tmp_path) is None

    local = tmp_path / "node_modules" / ".bin" / "esbuild"
    local.parent.mkdir(parents=True)
    local.write_text("#!/bin/sh\n", encoding="utf-8")
    assert find_executable("esbuild", tmp_path) == str(local)
    assert find_executable("esbuild", tmp_path / "blog" / "drafts") == str(local)
    assert find_executable("esbuild") is None

    monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")
    assert find_executable("esbuild", tmp_path) == "/usr/bin/esbuild"


def test_run_tool_captures_output(monkeypatch):
    seen = {}

    def fake_run(cmd, capture_output=False, text=False):
        seen.update(cmd=cmd, capture_output=capture_output, text=text)
        return subprocess.CompletedProcess(cmd, 2, stdout="", stderr="boom")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = asyncio.run(run_tool(("esbuild", "--version")))
    assert result.returncode == 2
    assert result.stderr == "boom"
    assert seen == {"cmd": ["esbuild", "--version"], "capture_output": True, "text": True}
