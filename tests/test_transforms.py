import asyncio
import logging
from pathlib import Path

import pytest
from bs4 import BeautifulSoup
from PIL import Image

from inkwell.protocols import HtmlTransform
from inkwell.transforms import (
    CodeBlocks,
    DemoEmbeds,
    FigureCaptions,
    HeadingAnchors,
    HtmlTransformPipeline,
    ImageAttributes,
    default_transforms,
)


def run_pass(transform, html, path=Path("/dist/index.html")):
    document = BeautifulSoup(html, "html.parser")
    result = transform(document, html, path)
    if asyncio.iscoroutine(result):
        asyncio.run(result)
    return document


def test_pipeline_runs_passes_in_order_and_awaits():
    calls = []

    def first(document, content, path):
        calls.append("first")
        document.body.append(document.new_tag("span", attrs={"id": "one"}))

    async def second(document, content, path):
        await asyncio.sleep(0)
        calls.append("second")
        assert document.find(id="one") is not None
        document.body.append(document.new_tag("span", attrs={"id": "two"}))

    def third(document, content, path):
        calls.append("third")
        assert document.find(id="two") is not None
        assert "<span" not in content
        assert path == Path("/dist/a/index.html")

    pipeline = HtmlTransformPipeline([first, second, third])
    html = "<html><body><p>x</p></body></html>"
    result = asyncio.run(pipeline(html, "/dist/a/index.html"))
    assert calls == ["first", "second", "third"]
    assert '<span id="one"></span><span id="two"></span>' in result


def test_pipeline_skips_non_html_outputs():
    def explode(document, content, path):
        raise AssertionError("should not run")

    pipeline = HtmlTransformPipeline([explode])
    assert asyncio.run(pipeline("<feed/>", "/dist/feed.xml")) == "<feed/>"
    assert asyncio.run(pipeline("body{}", None)) == "body{}"


def test_pipeline_propagates_pass_errors():
    def broken(document, content, path):
        raise ValueError("bad markup")

    with pytest.raises(ValueError):
        asyncio.run(HtmlTransformPipeline([broken])("<p></p>", "/dist/index.html"))


def test_default_passes_satisfy_protocol(tmp_path):
    passes = default_transforms(tmp_path)
    assert [type(p).__name__ for p in passes] == [
        "HeadingAnchors",
        "DemoEmbeds",
        "FigureCaptions",
        "ImageAttributes",
        "CodeBlocks",
    ]
    assert all(isinstance(p, HtmlTransform) for p in passes)


def test_heading_anchors():
    html = (
        "<h1>Title</h1><h2>Setup</h2><h3 id=\"custom\">Deep</h3>"
        "<h2>Setup</h2><h2>Done<a class=\"heading-anchor\" href=\"#d\">#</a></h2>"
    )
    document = run_pass(HeadingAnchors(), html)
    h1 = document.find("h1")
    assert h1.find("a") is None

    h2s = document.find_all("h2")
    assert h2s[0]["id"] == "setup"
    assert h2s[1]["id"] == "setup-1"
    link = h2s[0].find("a", class_="heading-anchor")
    assert link["href"] == "#setup"
    assert link["aria-label"] == "Link to section: Setup"
    assert link.string == "#"
    assert len(h2s[2].find_all("a")) == 1

    h3 = document.find("h3")
    assert h3["id"] == "custom"
    assert h3.find("a")["href"] == "#custom"


def test_demo_embeds():
    html = (
        '<p><iframe src="/demos/grid/"></iframe></p>'
        '<p>Text <iframe class="demo" src="https://codepen.io/x" title="Pen"></iframe></p>'
        '<iframe src="https://www.youtube.com/embed/x"></iframe>'
    )
    document = run_pass(DemoEmbeds(), html)
    demos = document.find_all("div", class_="demo")
    assert len(demos) == 2

    first = demos[0]
    assert first.parent.name == "[document]"
    frame = first.find("iframe")
    assert frame["class"] == ["demo__frame"]
    assert frame["loading"] == "lazy"
    assert frame["title"] == "Demo"
    link = first.find("a", class_="demo__link")
    assert link["href"] == "/demos/grid/"
    assert link["target"] == "_blank"
    assert link.get_attribute_list("rel") == ["noopener"]

    second = demos[1]
    assert second.parent.name == "p"
    assert second.find("iframe")["title"] == "Pen"

    video = document.find("iframe", src="https://www.youtube.com/embed/x")
    assert video.parent.name == "[document]"
    assert not video.get("loading")

    # Running the pass again leaves existing embeds alone.
    DemoEmbeds()(document, html, Path("/dist/index.html"))
    assert len(document.find_all("div", class_="demo")) == 2


def test_figure_captions():
    html = (
        '<p><img src="/a.png" alt="A *small* cat"></p>'
        '<p><img src="/b.png" alt=""></p>'
        '<p>Inline <img src="/c.png" alt="c"></p>'
    )
    document = run_pass(FigureCaptions(), html)
    figures = document.find_all("figure")
    assert len(figures) == 1
    figure = figures[0]
    assert figure.find("img")["src"] == "/a.png"
    caption = figure.find("figcaption")
    assert caption.decode_contents() == "A <em>small</em> cat"
    assert document.find("img", src="/b.png").parent.name == "p"
    assert document.find("img", src="/c.png").parent.name == "p"


def test_image_attributes_reads_dimensions(tmp_path, caplog):
    (tmp_path / "images").mkdir()
    Image.new("RGB", (3, 2), color="red").save(tmp_path / "images" / "logo.png")
    article = tmp_path / "articles" / "hello"
    article.mkdir(parents=True)
    Image.new("RGB", (5, 4)).save(article / "cover.jpg")

    html = (
        '<img src="/images/logo.png">'
        '<img src="cover.jpg">'
        '<img src="/images/sized.png" width="10" height="10" loading="eager">'
        '<img src="https://cdn.example/x.png">'
        '<img src="/images/diagram.svg">'
        '<img src="/images/missing.png">'
    )
    with caplog.at_level(logging.WARNING, logger="inkwell.transforms"):
        document = run_pass(ImageAttributes(tmp_path), html, article / "index.html")
    images = document.find_all("img")

    assert (images[0]["width"], images[0]["height"]) == ("3", "2")
    assert (images[1]["width"], images[1]["height"]) == ("5", "4")
    assert images[2]["width"] == "10"
    assert images[2]["loading"] == "eager"
    assert all(img["decoding"] == "async" for img in images)
    assert images[3]["loading"] == "lazy"
    assert not images[3].get("width")
    assert not images[4].get("width")
    assert not images[5].get("width")
    assert "missing.png" in caplog.text


def test_code_blocks():
    html = (
        '<pre class="language-css"><code class="language-css">a{}</code></pre>'
        '<pre><code class="language-js">x()</code></pre>'
        "<pre><code>plain</code></pre>"
    )
    document = run_pass(CodeBlocks(), html)
    pres = document.find_all("pre")
    assert pres[0]["class"] == ["language-css"]
    assert pres[0]["tabindex"] == "0"
    assert pres[0]["data-language"] == "css"
    assert pres[1]["class"] == ["language-js"]
    assert pres[1]["data-language"] == "js"
    assert not pres[2].get("tabindex")


def test_resolve_image_paths(tmp_path):
    images = ImageAttributes(tmp_path)
    page = tmp_path / "articles" / "a" / "index.html"
    assert images.resolve("/img/x.png", page) == tmp_path / "img" / "x.png"
    assert images.resolve("x%20y.png", page) == page.parent / "x y.png"
    assert images.resolve("data:image/png;base64,AAA", page) is None
    assert images.resolve("//cdn.example/x.png", page) is None
