import asyncio
import json
import logging
from datetime import datetime, timezone

import yaml

from gorgon.build import SiteBuilder, build_site, layout_for, template_model
from gorgon.cancellation import CancellationToken
from gorgon.errors import AssetCompileError
from gorgon.models import (
    BuildStatus,
    ContentItem,
    ContentKind,
    Metadata,
    PipelineStage,
    SiteConfiguration,
    SiteContext,
)
from gorgon.plugins import Plugin, default_dispatcher
from gorgon.storage import LocalStorage

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

LAYOUTS = {
    "post.html": (
        "<article><h1>{{ page.title }}</h1>{{ content }}"
        "<a class=\"prev\">{{ previous_post.url if previous_post else '' }}</a>"
        "<a class=\"next\">{{ next_post.url if next_post else '' }}</a></article>"
    ),
    "default.html": "<main>{{ page.title }}|{{ content }}</main>",
    "list.html": (
        "<h1>{{ page.title }}</h1><ul>{% for post in posts %}<li>{{ post.url }}</li>{% endfor %}</ul>"
        "<p>{{ pager.current_page }}/{{ pager.total_pages }}</p>"
    ),
}


class FakeCompiler:
    async def compile(self, source_text, source_path, storage, output_style="compressed"):
        return f"/* {output_style} */ {source_text}"


class FailingCompiler:
    async def compile(self, source_text, source_path, storage, output_style="compressed"):
        raise AssetCompileError("broken stylesheet")


class StageRecorder(Plugin):
    name = "recorder"
    stages = tuple(PipelineStage)

    def __init__(self):
        self.seen = []

    def execute(self, stage, context, source, output, cancel):
        self.seen.append(stage)


def write(root, path, text):
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


def source_file(body="Body text.", **meta):
    return "---\n" + yaml.safe_dump(meta, sort_keys=False) + "---\n" + body + "\n"


def create_site(root, config=None, layouts=None):
    settings = {"title": "Test Site", "baseUrl": "https://example.com"}
    settings.update(config or {})
    write(root, "config.json", json.dumps(settings))
    for name, text in (layouts or LAYOUTS).items():
        write(root, f"templates/{name}", text)


def make_builder(*plugins, compiler=None):
    dispatcher = default_dispatcher()
    for plugin in plugins:
        dispatcher.register(plugin)
    return SiteBuilder(compiler=compiler or FakeCompiler(), dispatcher=dispatcher, clock=lambda: NOW)


def run_build(root, builder=None, cancel=None, **overrides):
    builder = builder or make_builder()
    return asyncio.run(
        builder.build(
            "config.json",
            LocalStorage(root),
            LocalStorage(root / "_site"),
            cancel,
            overrides or None,
        )
    )


def read(root, path):
    return (root / "_site" / path).read_text(encoding="utf-8")


def test_full_build(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/index.md", source_file("Welcome **home**.", title="Home"))
    write(tmp_path, "content/about.md", source_file("About me.", title="About"))
    write(
        tmp_path,
        "content/posts/first.md",
        source_file("Hello world.", title="First Post", date="2024-01-10", tags=["Python"]),
    )
    write(
        tmp_path,
        "content/posts/second.md",
        source_file("Second one.", title="Second Post", date="2024-02-10", categories=["News"]),
    )
    write(tmp_path, "content/notes.txt", "ignored")
    write(tmp_path, "styles/main.scss", "body { color: red; }")
    (tmp_path / "static" / "img").mkdir(parents=True)
    (tmp_path / "static" / "img" / "logo.png").write_bytes(b"\x89PNG")

    result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert result.issues == []
    assert read(tmp_path, "index.html") == "<main>Home|<p>Welcome <strong>home</strong>.</p>\n</main>"
    assert read(tmp_path, "about/index.html").startswith("<main>About|")
    first = read(tmp_path, "blog/2024/01/10/first-post/index.html")
    second = read(tmp_path, "blog/2024/02/10/second-post/index.html")
    assert '<a class="next">/blog/2024/02/10/second-post/</a>' in first
    assert '<a class="prev"></a>' in first
    assert '<a class="prev">/blog/2024/01/10/first-post/</a>' in second
    assert "<li>/blog/2024/02/10/second-post/</li><li>/blog/2024/01/10/first-post/</li>" in read(
        tmp_path, "blog/index.html"
    )
    assert "<h1>Tag: Python</h1>" in read(tmp_path, "tag/python/index.html")
    assert "<h1>Category: News</h1>" in read(tmp_path, "category/news/index.html")
    assert read(tmp_path, "css/main.css") == "/* compressed */ body { color: red; }"
    assert (tmp_path / "_site" / "img" / "logo.png").read_bytes() == b"\x89PNG"
    assert "https://example.com/about/" in read(tmp_path, "sitemap.xml")
    assert "<title>Second Post</title>" in read(tmp_path, "feed.xml")
    assert read(tmp_path, "robots.txt").endswith("Sitemap: https://example.com/sitemap.xml\n")
    assert not (tmp_path / "_site" / "notes.txt").exists()

    context = result.context
    assert [p.title for p in context.posts] == ["Second Post", "First Post"]
    assert [p.title for p in context.pages] == ["About", "Home"]
    assert context.posts[0].seo.canonical_url == "https://example.com/blog/2024/02/10/second-post/"
    assert context.posts[1].post.summary == "Hello world."
    assert context.posts[1].post.reading_time == 1
    for item in [*context.all_content, *context.list_pages]:
        assert item.url.startswith("/")
        assert item.url == "/" or item.url.endswith("/")
        assert not item.destination_path.startswith("/")
        assert item.destination_path.endswith("index.html")


def test_post_url_uses_date_in_written_offset(tmp_path):
    create_site(tmp_path)
    write(
        tmp_path,
        "content/posts/a.md",
        "---\ntitle: A\ndate: 2024-03-01T08:00:00+09:00\n---\nBody.\n",
    )

    result = run_build(tmp_path)

    post = result.context.posts[0]
    assert post.url == "/blog/2024/03/01/a/"
    assert post.post.date == datetime(2024, 2, 29, 23, 0, tzinfo=timezone.utc)


def test_blog_pagination_with_three_posts(tmp_path):
    create_site(tmp_path, {"postsPerPage": 2})
    for day in (1, 2, 3):
        write(
            tmp_path,
            f"content/posts/post-{day}.md",
            source_file(title=f"Day {day}", date=f"2024-03-0{day}"),
        )

    result = run_build(tmp_path)

    blog = [p for p in result.context.list_pages if p.listing.list_type == "blog"]
    assert len(blog) == 2
    first, second = (page.listing.pager for page in blog)
    assert [p.title for p in first.items_on_page] == ["Day 3", "Day 2"]
    assert first.next_page_url == "/blog/page/2/"
    assert first.previous_page_url is None
    assert [p.title for p in second.items_on_page] == ["Day 1"]
    assert second.previous_page_url == "/blog/"
    assert second.next_page_url is None
    assert read(tmp_path, "blog/index.html").endswith("<p>1/2</p>")
    assert read(tmp_path, "blog/page/2/index.html").endswith("<p>2/2</p>")


def test_explicit_url_sets_destination(tmp_path):
    create_site(tmp_path)
    write(
        tmp_path,
        "content/posts/custom.md",
        source_file(title="Custom", date="2024-01-01", url="/custom/"),
    )

    result = run_build(tmp_path)

    assert result.context.posts[0].destination_path == "custom/index.html"
    assert (tmp_path / "_site" / "custom" / "index.html").exists()


def test_post_without_date_is_skipped(tmp_path, caplog):
    create_site(tmp_path)
    write(tmp_path, "content/posts/dated.md", source_file(title="Dated", date="2024-01-01"))
    write(tmp_path, "content/posts/undated.md", source_file(title="Undated"))

    with caplog.at_level(logging.ERROR, logger="gorgon.build"):
        result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert [p.title for p in result.context.posts] == ["Dated"]
    assert len(result.issues) == 1
    issue = result.issues[0]
    assert issue.source == "content/posts/undated.md"
    assert issue.stage == "content"
    assert "no date" in issue.message
    assert "content/posts/undated.md" in caplog.text


def test_tags_differing_in_case_share_a_term(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/posts/a.md", source_file(title="A", date="2024-01-02", tags=["Go"]))
    write(tmp_path, "content/posts/b.md", source_file(title="B", date="2024-01-01", tags=["go"]))

    result = run_build(tmp_path)

    tags = result.context.taxonomies["tag"]
    assert list(tags) == ["Go"]
    assert len(tags["go"]) == 2
    assert read(tmp_path, "tag/go/index.html").count("<li>") == 2


def test_invalid_frontmatter_is_recorded(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/broken.md", "---\ntitle: [oops\n---\nBody")
    write(tmp_path, "content/fine.md", source_file(title="Fine"))

    result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert [i.source for i in result.issues] == ["content/broken.md"]
    assert [p.title for p in result.context.pages] == ["Fine"]


def test_drafts_are_excluded_by_default(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/guides/wip.md", source_file(title="WIP", draft=True))

    result = run_build(tmp_path)
    assert result.context.pages == []
    assert not (tmp_path / "_site" / "drafts").exists()


def test_drafts_are_built_under_drafts_path_when_enabled(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/guides/wip.md", source_file(title="WIP", draft=True))

    result = run_build(tmp_path, build_drafts=True)

    assert [p.url for p in result.context.pages] == ["/drafts/guides/wip/"]
    assert read(tmp_path, "drafts/guides/wip/index.html").startswith("<main>WIP|")
    assert not (tmp_path / "_site" / "sitemap.xml").exists()


def test_future_posts_need_opt_in(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/posts/later.md", source_file(title="Later", date="2030-01-01"))

    assert run_build(tmp_path).context.posts == []
    assert [p.title for p in run_build(tmp_path, build_future_dated=True).context.posts] == [
        "Later"
    ]


def test_destination_collisions_are_recorded(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/a.md", source_file("first", title="A", url="/same/"))
    write(tmp_path, "content/b.md", source_file("second", title="B", url="/same/"))

    result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert [p.source_path for p in result.context.pages] == ["content/a.md"]
    assert [(i.source, i.stage) for i in result.issues] == [("content/b.md", "content")]
    assert "content/a.md" in result.issues[0].message
    assert read(tmp_path, "same/index.html") == "<main>A|<p>first</p>\n</main>"


def test_list_page_colliding_with_content_is_recorded(tmp_path):
    create_site(tmp_path, {"postsPerPage": 1})
    write(tmp_path, "content/blog.md", source_file(title="My Blog", url="/blog/"))
    write(tmp_path, "content/posts/a.md", source_file(title="A", date="2024-01-01"))
    write(tmp_path, "content/posts/b.md", source_file(title="B", date="2024-01-02"))

    result = run_build(tmp_path)

    assert read(tmp_path, "blog/index.html").startswith("<main>My Blog|")
    assert [(i.source, i.stage) for i in result.issues] == [("_generated/blog/page/1", "lists")]
    assert "content/blog.md" in result.issues[0].message
    assert [p for p in result.context.list_pages if p.listing.list_type == "blog"] == []
    assert not (tmp_path / "_site" / "blog" / "page" / "2").exists()


def test_missing_layout_is_recorded(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/odd.md", source_file(title="Odd", layout="nope"))
    write(tmp_path, "content/ok.md", source_file(title="Ok"))

    result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert [(i.source, i.stage) for i in result.issues] == [("content/odd.md", "render")]
    assert "nope.html" in result.issues[0].message
    assert (tmp_path / "_site" / "ok" / "index.html").exists()
    assert not (tmp_path / "_site" / "odd" / "index.html").exists()


def test_template_runtime_error_is_recorded(tmp_path):
    layouts = dict(LAYOUTS, **{"default.html": "{{ page.title.missing.attr }}"})
    create_site(tmp_path, layouts=layouts)
    write(tmp_path, "content/page.md", source_file(title="Page"))

    result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert [(i.source, i.stage) for i in result.issues] == [("content/page.md", "render")]
    assert result.issues[0].message.startswith("Undefined variable")


def test_stages_run_in_order(tmp_path):
    create_site(tmp_path)
    recorder = StageRecorder()

    result = run_build(tmp_path, make_builder(recorder))

    assert result.status is BuildStatus.SUCCEEDED
    assert recorder.seen == list(PipelineStage)


def test_plugin_failure_does_not_abort_build(tmp_path):
    class Exploding(Plugin):
        name = "exploding"
        stages = (PipelineStage.POST_RENDER,)

        def execute(self, stage, context, source, output, cancel):
            raise RuntimeError("kaboom")

    create_site(tmp_path)
    write(tmp_path, "content/page.md", source_file(title="Page"))
    recorder = StageRecorder()

    result = run_build(tmp_path, make_builder(Exploding(), recorder))

    assert result.status is BuildStatus.SUCCEEDED
    assert [(i.source, i.message, i.stage) for i in result.issues] == [
        ("exploding", "kaboom", "post_render")
    ]
    assert PipelineStage.BUILD_COMPLETE in recorder.seen
    assert (tmp_path / "_site" / "robots.txt").exists()


def test_plugins_can_add_other_content(tmp_path):
    class Extra(Plugin):
        name = "extra"
        stages = (PipelineStage.POST_CONTENT_PROCESSING,)

        def execute(self, stage, context, source, output, cancel):
            context.other_content.append(
                ContentItem(
                    kind=ContentKind.PAGE,
                    source_path="_generated/extra",
                    metadata=Metadata(title="Extra"),
                    body="generated",
                    url="/extra/",
                    destination_path="extra/index.html",
                )
            )

    create_site(tmp_path)
    run_build(tmp_path, make_builder(Extra()))
    assert read(tmp_path, "extra/index.html") == "<main>Extra|generated</main>"


def test_cancellation_stops_build(tmp_path):
    class Canceller(Plugin):
        name = "canceller"
        stages = (PipelineStage.POST_CONTENT_PROCESSING,)

        def execute(self, stage, context, source, output, cancel):
            cancel.cancel()

    create_site(tmp_path)
    write(tmp_path, "content/page.md", source_file(title="Page"))
    recorder = StageRecorder()

    result = run_build(tmp_path, make_builder(Canceller(), recorder))

    assert result.status is BuildStatus.CANCELLED
    assert PipelineStage.BUILD_COMPLETE not in recorder.seen
    assert PipelineStage.POST_RENDER not in recorder.seen
    assert not (tmp_path / "_site" / "page" / "index.html").exists()


def test_already_cancelled_token(tmp_path):
    create_site(tmp_path)
    cancel = CancellationToken()
    cancel.cancel()

    result = run_build(tmp_path, cancel=cancel)

    assert result.status is BuildStatus.CANCELLED
    assert result.context is None


def test_orchestration_failure_fails_build(tmp_path):
    class BrokenOutput(LocalStorage):
        async def create_directory(self, path):
            raise PermissionError("read-only output")

    create_site(tmp_path)
    recorder = StageRecorder()
    builder = make_builder(recorder)

    result = asyncio.run(
        builder.build("config.json", LocalStorage(tmp_path), BrokenOutput(tmp_path / "_site"))
    )

    assert result.status is BuildStatus.FAILED
    assert isinstance(result.exception, PermissionError)
    assert recorder.seen == [PipelineStage.PRE_BUILD]


def test_stylesheet_failure_is_recorded(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "styles/main.scss", "body {")

    result = run_build(tmp_path, make_builder(compiler=FailingCompiler()))

    assert result.status is BuildStatus.SUCCEEDED
    assert [(i.source, i.stage) for i in result.issues] == [("styles/main.scss", "assets")]
    assert "broken stylesheet" in result.issues[0].message


def test_missing_configuration_uses_defaults(tmp_path):
    write(tmp_path, "templates/default.html", LAYOUTS["default.html"])
    write(tmp_path, "content/about.md", source_file(title="About"))

    result = run_build(tmp_path)

    assert result.status is BuildStatus.SUCCEEDED
    assert result.context.configuration.title == "My Gorgon Site"
    assert read(tmp_path, "about/index.html") == "<main>About|<p>Body text.</p>\n</main>"
    assert not (tmp_path / "_site" / "sitemap.xml").exists()


def test_build_site_uses_configured_output_directory(tmp_path):
    create_site(tmp_path, {"outputDirectory": "public"})
    write(tmp_path, "content/about.md", source_file(title="About"))

    result = build_site(tmp_path, builder=make_builder())

    assert result.succeeded
    assert (tmp_path / "public" / "about" / "index.html").exists()


def test_build_site_with_explicit_output(tmp_path):
    create_site(tmp_path)
    write(tmp_path, "content/about.md", source_file(title="About"))
    out = tmp_path / "elsewhere"

    result = build_site(tmp_path, out, builder=make_builder())

    assert result.succeeded
    assert (out / "about" / "index.html").exists()


def test_layout_for():
    post = ContentItem(kind=ContentKind.POST, source_path="p")
    wide = ContentItem(kind=ContentKind.PAGE, source_path="q", metadata=Metadata(layout="wide"))
    listing = ContentItem(kind=ContentKind.LIST, source_path="r")
    assert layout_for(post) == "post.html"
    assert layout_for(wide) == "wide.html"
    assert layout_for(listing) == "list.html"


def test_template_model_for_page():
    context = SiteContext(SiteConfiguration(title="T"))
    page = ContentItem(kind=ContentKind.PAGE, source_path="q", body="<p>x</p>")
    model = template_model(page, context)
    assert model["page"] is page
    assert str(model["content"]) == "<p>x</p>"
    assert model["site"]["title"] == "T"
    assert "pager" not in model
    assert "next_post" not in model
