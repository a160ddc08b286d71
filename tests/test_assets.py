import asyncio
import subprocess
from pathlib import Path

import pytest

from inkwell import assets
from inkwell.assets import (
    AssetBuildError,
    ScriptCompiler,
    StylesheetCompiler,
    add_vendor_prefixes,
    create_default_registry,
    inline_imports,
    lower_media_ranges,
    process_css,
)
from inkwell.build import minify_html_output
from inkwell.config import load_settings
from inkwell.html_utils import minify_html, minify_xml
from inkwell.renderers import MarkdownRenderer


def make_settings(tmp_path: Path):
    (tmp_path / "src" / "styles").mkdir(parents=True)
    (tmp_path / "src" / "scripts").mkdir(parents=True)
    return load_settings(tmp_path)


def test_stylesheet_allow_list(tmp_path):
    settings = make_settings(tmp_path)
    compiler = StylesheetCompiler(settings)
    styles = settings.input_dir / "styles"

    partial = styles / "partials.css"
    assert asyncio.run(compiler.compile("a { color: red; }", partial)) is None

    index = styles / "index.css"
    assert asyncio.run(compiler.compile("a {\n  color: red;\n}\n", index)) == "a{color:red}"
    for name in ("light.css", "dark.css"):
        assert asyncio.run(compiler.compile("b { margin: 0px; }", styles / name)) is not None


def test_inline_imports(tmp_path):
    (tmp_path / "base").mkdir()
    (tmp_path / "base" / "reset.css").write_text(
        '@import "tokens.css";\nhtml { margin: 0 }', encoding="utf-8"
    )
    (tmp_path / "base" / "tokens.css").write_text(":root { --c: red }", encoding="utf-8")
    (tmp_path / "print.css").write_text("nav { display: none }", encoding="utf-8")
    entry = tmp_path / "index.css"
    source = (
        '@import "base/reset.css";\n'
        "@import url('base/tokens.css');\n"
        '@import "print.css" print;\n'
        '@import url("https://fonts.example/css");\n'
        "body { color: var(--c) }"
    )
    css = inline_imports(source, entry)
    assert css.count(":root { --c: red }") == 1
    assert "html { margin: 0 }" in css
    assert "@media print{nav { display: none }}" in css
    assert '@import url("https://fonts.example/css");' in css
    assert css.index(":root") < css.index("html {") < css.index("body {")


def test_inline_imports_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        inline_imports('@import "nope.css";', tmp_path / "index.css")


def test_lower_media_ranges():
    assert lower_media_ranges("@media (width >= 600px) {}") == "@media (min-width: 600px) {}"
    assert lower_media_ranges("@media (width < 40em) {}") == "@media (max-width: 39.999em) {}"
    assert lower_media_ranges("@media (600px <= width) {}") == "@media (min-width: 600px) {}"
    assert (
        lower_media_ranges("@media (400px <= width < 800px) {}")
        == "@media (min-width: 400px) and (max-width: 799.999px) {}"
    )
    unchanged = "@media (min-width: 600px) {}"
    assert lower_media_ranges(unchanged) == unchanged


def test_add_vendor_prefixes():
    css = add_vendor_prefixes(".a { user-select: none; color: red }")
    assert "-webkit-user-select:none;user-select:none" in css

    already = ".a { -webkit-user-select: none; user-select: none }"
    assert add_vendor_prefixes(already).count("-webkit-user-select") == 1

    # Longer property names are not confused with shorter ones.
    assert "-webkit-mask-image" in add_vendor_prefixes(".b{mask-image:url(a.svg)}")


def test_process_css_chain(tmp_path):
    (tmp_path / "layout.css").write_text(
        "@media (width >= 48em) { .grid { backdrop-filter: blur(2px); } }",
        encoding="utf-8",
    )
    css = process_css('@import "layout.css";\n/* note */\n', tmp_path / "index.css")
    assert "min-width:48em" in css
    assert "width >=" not in css
    assert ".grid{-webkit-backdrop-filter:blur(2px);backdrop-filter:blur(2px)}" in css
    assert "note" not in css
    assert "@import" not in css


def test_process_css_keeps_svg_data_uris(tmp_path):
    source = (
        "a { background: url(\"data:image/svg+xml,"
        "<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 10 10'/>\"); }"
    )
    css = process_css(source, tmp_path / "index.css")
    assert "<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 10 10'/>" in css
    assert css.startswith("a{background:url(")


def test_script_compiler_skips_other_files(tmp_path):
    settings = make_settings(tmp_path)
    compiler = ScriptCompiler(settings)
    other = settings.input_dir / "scripts" / "vendor.js"
    assert asyncio.run(compiler.compile("var a = 1;", other)) is None


def test_script_compiler_runs_esbuild(monkeypatch, tmp_path):
    settings = make_settings(tmp_path)
    entry = settings.input_dir / "scripts" / "index.js"
    calls = {}

    def fake_run(cmd, capture_output=False, text=False):
        calls["cmd"] = cmd
        return subprocess.CompletedProcess(cmd, 0, stdout="console.log(1);\n", stderr="")

    monkeypatch.setattr(assets, "find_executable", lambda name, root=None: "/bin/esbuild")
    monkeypatch.setattr(subprocess, "run", fake_run)

    output = asyncio.run(ScriptCompiler(settings).compile("console.log( 1 )", entry))
    assert output == "console.log(1);\n"
    assert calls["cmd"] == [
        "/bin/esbuild",
        str(entry),
        "--bundle",
        "--minify",
        "--target=es2020",
    ]


def test_script_compiler_reports_esbuild_failure(monkeypatch, tmp_path):
    settings = make_settings(tmp_path)
    entry = settings.input_dir / "scripts" / "index.js"

    def fake_run(cmd, capture_output=False, text=False):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="Could not resolve \"x\"\n")

    monkeypatch.setattr(assets, "find_executable", lambda name, root=None: "/bin/esbuild")
    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(AssetBuildError) as excinfo:
        asyncio.run(ScriptCompiler(settings).compile("import 'x'", entry))
    assert excinfo.value.source_path == entry
    assert excinfo.value.message == 'Could not resolve "x"'


def test_script_compiler_falls_back_to_rjsmin(monkeypatch, tmp_path, caplog):
    settings = make_settings(tmp_path)
    entry = settings.input_dir / "scripts" / "index.js"
    monkeypatch.setattr(assets, "find_executable", lambda name, root=None: None)

    output = asyncio.run(
        ScriptCompiler(settings).compile("function add(a, b) {\n  return a + b;\n}\n", entry)
    )
    assert output == "function add(a,b){return a+b;}"
    assert "esbuild not found" in caplog.text


def test_registry_selects_by_extension(tmp_path):
    settings = make_settings(tmp_path)
    registry = create_default_registry(settings)
    assert registry.extensions == {".css", ".js"}
    assert isinstance(registry.get_compiler(Path("a/b.css")), StylesheetCompiler)
    assert isinstance(registry.get_compiler(Path("a/b.js")), ScriptCompiler)
    assert registry.get_compiler(Path("a/b.txt")) is None


def test_minify_xml_only_touches_whitespace_between_tags():
    xml = '<?xml version="1.0"?>\n<feed>\n  <title>  Notes  </title>\n  <!-- c -->\n</feed>\n'
    assert minify_xml(xml) == '<?xml version="1.0"?><feed><title>  Notes  </title><!-- c --></feed>'


def test_minify_html():
    html = (
        "<!doctype html>\n<html>\n  <body>\n    <!-- drop me -->\n"
        '    <input type="checkbox" checked="checked">\n'
        '    <p class="a">  Hello   world  </p>\n'
        "    <pre>  keep\n   this</pre>\n  </body>\n</html>\n"
    )
    result = minify_html(html)
    assert "drop me" not in result
    assert "<input type=\"checkbox\" checked>" in result
    assert 'class="a"' in result
    assert "<pre>  keep\n   this</pre>" in result
    assert "Hello world" in result


def test_minify_html_keeps_spaces_between_inline_elements():
    assert "<b>a</b> <i>b</i>" in minify_html("<p><b>a</b>\n<i>b</i></p>")

    html = MarkdownRenderer().render("Read **the docs**\n[here](/x/) now.")
    result = minify_html_output(html, Path("dist/index.html"))
    assert "</strong> <a" in result
