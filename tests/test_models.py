from datetime import date, datetime, timedelta, timezone

import pytest

from gorgon.models import (
    BuildIssue,
    BuildResult,
    BuildStatus,
    ContentItem,
    ContentKind,
    Metadata,
    PostInfo,
    SiteConfiguration,
    SiteContext,
    to_local_date,
    to_utc_datetime,
)


def test_to_utc_datetime_accepts_common_forms():
    expected = datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert to_utc_datetime(date(2024, 1, 15)) == expected
    assert to_utc_datetime(datetime(2024, 1, 15)) == expected
    assert to_utc_datetime("2024-01-15") == expected
    assert to_utc_datetime("2024-01-15T00:00:00Z") == expected
    assert to_utc_datetime(None) is None
    assert to_utc_datetime("") is None


def test_to_utc_datetime_converts_offsets():
    value = datetime(2024, 1, 15, 2, 0, tzinfo=timezone(timedelta(hours=3)))
    assert to_utc_datetime(value) == datetime(2024, 1, 14, 23, 0, tzinfo=timezone.utc)
    assert to_utc_datetime(value).tzinfo == timezone.utc


def test_to_local_date_keeps_written_offset():
    value = datetime(2024, 1, 15, 2, 0, tzinfo=timezone(timedelta(hours=3)))
    assert to_local_date(value) == date(2024, 1, 15)
    assert to_local_date("2024-03-01T08:00:00+09:00") == date(2024, 3, 1)
    assert to_local_date(date(2024, 1, 15)) == date(2024, 1, 15)
    assert to_local_date(None) is None


def test_to_utc_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        to_utc_datetime("not a date")
    with pytest.raises(ValueError):
        to_utc_datetime(12.5)


def test_metadata_from_mapping_known_and_extra_keys():
    meta = Metadata.from_mapping(
        {
            "Title": "  Hello  ",
            "date": date(2024, 3, 1),
            "lastModified": "2024-03-02",
            "tags": ["a", "b"],
            "categories": "News, Updates",
            "draft": "yes",
            "sitemapPriority": 0.9,
            "author": "Sam",
        }
    )
    assert meta.title == "Hello"
    assert meta.date == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert meta.last_modified == datetime(2024, 3, 2, tzinfo=timezone.utc)
    assert meta.tags == ["a", "b"]
    assert meta.categories == ["News", " Updates"]
    assert meta.draft is True
    assert meta.extra == {"sitemapPriority": 0.9, "author": "Sam"}
    assert meta.get("author") == "Sam"
    assert meta.get("missing", "x") == "x"


def test_metadata_snake_case_keys():
    meta = Metadata.from_mapping({"last_modified": "2024-01-01", "layout": "wide.html"})
    assert meta.last_modified is not None
    assert meta.layout == "wide.html"


def test_metadata_bad_date_raises():
    with pytest.raises(ValueError):
        Metadata.from_mapping({"date": "yesterday"})


def test_configuration_trims_base_url():
    config = SiteConfiguration(base_url=" https://example.com/ ")
    assert config.base_url == "https://example.com"


def test_taxonomy_base_path():
    config = SiteConfiguration(category_base_path="/topics/")
    assert config.taxonomy_base_path("category") == "topics"
    assert config.taxonomy_base_path("tag") == "tag"
    assert config.taxonomy_base_path("series") is None


def test_content_item_properties():
    when = datetime(2024, 5, 1, tzinfo=timezone.utc)
    post = ContentItem(
        kind=ContentKind.POST,
        source_path="content/posts/a.md",
        metadata=Metadata(title="A"),
        post=PostInfo(date=when),
    )
    page = ContentItem(kind=ContentKind.PAGE, source_path="content/about.md")
    assert post.is_post and not post.is_page
    assert post.title == "A"
    assert post.date == when
    assert page.is_page
    assert page.title == ""
    assert page.date is None


def test_site_context_all_content_order():
    config = SiteConfiguration()
    post = ContentItem(kind=ContentKind.POST, source_path="p")
    page = ContentItem(kind=ContentKind.PAGE, source_path="q")
    other = ContentItem(kind=ContentKind.PAGE, source_path="r")
    context = SiteContext(config, posts=[post], pages=[page], other_content=[other])
    assert context.all_content == [post, page, other]


def test_build_result_counts_issues():
    result = BuildResult(
        status=BuildStatus.SUCCEEDED,
        issues=[BuildIssue("a.md", "bad", "content")],
    )
    assert result.error_count == 1
    assert result.succeeded
