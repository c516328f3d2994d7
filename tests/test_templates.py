import asyncio
import logging

import pytest

from gorgon.errors import TemplateNotFoundError
from gorgon.models import SiteConfiguration
from gorgon.protocols import TemplateRenderer
from gorgon.storage import LocalStorage
from gorgon.templates import JinjaTemplateRenderer, pygments_css


def write_templates(root, layouts, includes=None):
    for name, source in layouts.items():
        path = root / "templates" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
    for name, source in (includes or {}).items():
        path = root / "includes" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")


def initialized(tmp_path, config=None):
    renderer = JinjaTemplateRenderer()
    asyncio.run(renderer.initialize(config or SiteConfiguration(), LocalStorage(tmp_path)))
    return renderer


def test_renderer_satisfies_protocol():
    assert isinstance(JinjaTemplateRenderer(), TemplateRenderer)


def test_render_layout_with_include(tmp_path):
    write_templates(
        tmp_path,
        {"default.html": "{% include 'nav.html' %}<main>{{ content }}</main>"},
        {"nav.html": "<nav>{{ site_title }}</nav>"},
    )
    renderer = initialized(tmp_path, SiteConfiguration(title="My Site"))
    html = asyncio.run(renderer.render("default.html", {"content": "hi"}))
    assert html == "<nav>My Site</nav><main>hi</main>"


def test_layouts_are_keyed_by_relative_path(tmp_path):
    write_templates(
        tmp_path,
        {
            "base.html": "<body>{% block body %}{% endblock %}</body>",
            "docs/page.html": "{% extends 'base.html' %}{% block body %}{{ title }}{% endblock %}",
        },
    )
    renderer = initialized(tmp_path)
    assert renderer.has_template("docs/page.html")
    assert asyncio.run(renderer.render("docs/page.html", {"title": "T"})) == "<body>T</body>"


def test_autoescape_html(tmp_path):
    write_templates(tmp_path, {"default.html": "{{ value }}"})
    renderer = initialized(tmp_path)
    assert asyncio.run(renderer.render("default.html", {"value": "<b>"})) == "&lt;b&gt;"


def test_missing_layout_raises(tmp_path):
    write_templates(tmp_path, {"default.html": "x"})
    renderer = initialized(tmp_path)
    with pytest.raises(TemplateNotFoundError) as excinfo:
        asyncio.run(renderer.render("post.html", {}))
    assert excinfo.value.key == "post.html"


def test_layout_with_syntax_error_is_skipped(tmp_path, caplog):
    write_templates(tmp_path, {"broken.html": "{% if %}", "default.html": "ok"})
    with caplog.at_level(logging.ERROR, logger="gorgon.templates"):
        renderer = initialized(tmp_path)
    assert "broken.html" in caplog.text
    assert not renderer.has_template("broken.html")
    assert asyncio.run(renderer.render("default.html", {})) == "ok"
    with pytest.raises(TemplateNotFoundError):
        asyncio.run(renderer.render("broken.html", {}))


def test_missing_template_directory_loads_nothing(tmp_path):
    renderer = initialized(tmp_path)
    assert renderer.layouts == {}
    assert renderer.includes == {}


def test_url_for_and_slugify(tmp_path):
    write_templates(
        tmp_path, {"default.html": "{{ url_for('/about/') }} {{ 'Hello World' | slugify }}"}
    )
    renderer = initialized(tmp_path, SiteConfiguration(base_url="https://example.com/"))
    html = asyncio.run(renderer.render("default.html", {}))
    assert html == "https://example.com/about/ hello-world"
    assert renderer.url_for("https://cdn.example.com/x.js") == "https://cdn.example.com/x.js"
    assert renderer.url_for("css/main.css") == "https://example.com/css/main.css"


def test_pygments_css():
    assert ".highlight" in pygments_css()
