from inkwell.config import DEFAULT_SETTINGS
from inkwell.passthrough import PassthroughCopy, PassthroughRule


def test_rule_parsing_and_matching():
    directory = PassthroughRule.parse("images/")
    assert directory.pattern == "images"
    assert directory.matches("images/logo.png")
    assert directory.matches("images/icons/x.svg")
    assert not directory.matches("imagesets/a.png")

    single = PassthroughRule.parse("robots.txt")
    assert single.matches("robots.txt")
    assert not single.matches("pages/robots.txt")

    articles = PassthroughRule.parse(
        {"glob": "articles/**/*", "exclude_suffixes": [".md", ".YML"]}
    )
    assert articles.exclude_suffixes == (".md", ".yml")
    assert articles.matches("articles/hello/cover.png")
    assert articles.matches("articles/hello/demo/index.html")
    assert not articles.matches("articles/hello/index.md")
    assert not articles.matches("articles/hello/hello.yml")


def test_passthrough_copies_bytes(tmp_path):
    src = tmp_path / "src"
    dist = tmp_path / "dist"
    (src / "images").mkdir(parents=True)
    (src / "articles" / "hello").mkdir(parents=True)
    (src / "fonts").mkdir()
    png = bytes(range(256))
    (src / "images" / "logo.png").write_bytes(png)
    (src / "fonts" / "body.woff2").write_bytes(b"\x00wOF2")
    (src / "robots.txt").write_text("User-agent: *\n", encoding="utf-8")
    (src / "articles" / "hello" / "index.md").write_text("# Hi", encoding="utf-8")
    (src / "articles" / "hello" / "index.yml").write_text("a: 1", encoding="utf-8")
    (src / "articles" / "hello" / "chart.svg").write_text("<svg/>", encoding="utf-8")
    (src / "index.njk").write_text("home", encoding="utf-8")

    copy = PassthroughCopy(src, dist, DEFAULT_SETTINGS["passthrough"])
    written = copy.run()

    assert sorted(p.relative_to(dist).as_posix() for p in written) == [
        "articles/hello/chart.svg",
        "fonts/body.woff2",
        "images/logo.png",
        "robots.txt",
    ]
    assert (dist / "images" / "logo.png").read_bytes() == png
    assert (dist / "fonts" / "body.woff2").read_bytes() == b"\x00wOF2"
    assert not (dist / "articles" / "hello" / "index.md").exists()
    assert not (dist / "index.njk").exists()
    assert copy.matches("talks/slides.pdf")
    assert not copy.matches("index.njk")
