"""
Tests for URL validation, URL identity and source type inference.
"""

from pulsewatch.common.url_utils import infer_source_type, is_valid_url, url_key


class TestIsValidUrl:

    def test_http_and_https(self):
        assert is_valid_url("https://example.com/page")
        assert is_valid_url("http://example.com")

    def test_placeholders_rejected(self):
        for value in ("n/a", "Unknown", "", None, "not mentioned"):
            assert not is_valid_url(value)

    def test_other_schemes_rejected(self):
        assert not is_valid_url("ftp://example.com/file")
        assert not is_valid_url("javascript:alert(1)")

    def test_missing_host_rejected(self):
        assert not is_valid_url("https://")


class TestUrlKey:

    def test_case_insensitive(self):
        assert url_key("https://Example.com/Path") == url_key("https://example.com/path")

    def test_strips_whitespace(self):
        assert url_key("  https://example.com ") == "https://example.com"


class TestInferSourceType:

    def test_news(self):
        assert infer_source_type("https://www.reuters.com/business/acme") == "news"
        assert infer_source_type("https://localnews.example.org/story") == "news"

    def test_social(self):
        assert infer_source_type("https://twitter.com/acme") == "social"
        assert infer_source_type("https://www.linkedin.com/company/acme") == "social"

    def test_forum(self):
        assert infer_source_type("https://www.reddit.com/r/widgets") == "forum"
        assert infer_source_type("https://news.ycombinator.com/item?id=1") == "news"

    def test_blog(self):
        assert infer_source_type("https://acme.substack.com/p/update") == "blog"
        assert infer_source_type("https://medium.com/@acme/post") == "blog"

    def test_rss_by_path(self):
        assert infer_source_type("https://example.com/feed") == "rss"
        assert infer_source_type("https://feeds.example.com/acme.xml") == "rss"

    def test_other(self):
        assert infer_source_type("https://acme.example.com/about") == "other"
