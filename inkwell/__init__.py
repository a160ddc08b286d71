"""Inkwell blog builder.

This package builds a personal blog from Markdown and Nunjucks-style templates.
It renders content with mistune and Jinja2, post-processes HTML pages through
an ordered list of DOM passes, bundles stylesheets and scripts, and copies
static files through untouched.

The main entry point is the CLI module, which provides commands for building
the site, running a development server and scaffolding new articles.

Module layout:
- config: Build settings and the global site configuration record.
- content: Source discovery, front matter and the data cascade.
- renderers: Markdown rendering (block, inline and plain text).
- templates: Jinja2 environment, layouts and filters.
- transforms: HTML transform pipeline and its passes.
- assets: CSS and JS compile steps, XML minification.
- passthrough: Verbatim file copying.
- build: Orchestration of a full build.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
