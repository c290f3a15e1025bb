"""Tests for URL normalization."""
import pytest

from core.urls import InvalidUrlError, extract_domain, normalize_url


class TestNormalizeUrl:
    """Tests for normalize_url."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://example.com/x", "example.com/x"),
            ("http://example.com/x", "example.com/x"),
            ("https://www.Example.com/x/", "example.com/x"),
            ("https://example.com/x#section-2", "example.com/x"),
            ("https://example.com:443/x", "example.com/x"),
            ("http://example.com:8080/x", "example.com:8080/x"),
            ("https://example.com/docs/index.html", "example.com/docs"),
            ("example.com/x", "example.com/x"),
        ],
    )
    def test__normalize_url__canonical_forms(self, url: str, expected: str) -> None:
        """Scheme, www, default port, fragment and trailing slash never change identity."""
        assert normalize_url(url) == expected

    def test__normalize_url__drops_tracking_params_and_sorts_query(self) -> None:
        """Tracking parameters are removed and the rest sorted."""
        url = "https://example.com/a?b=2&utm_source=feed&a=1&fbclid=xyz"
        assert normalize_url(url) == "example.com/a?a=1&b=2"

    def test__normalize_url__same_identity_for_variants(self) -> None:
        """Variants of one page normalize to the same key."""
        variants = [
            "https://example.com/x",
            "http://www.example.com/x/",
            "https://EXAMPLE.com/x?utm_campaign=spring",
        ]
        assert len({normalize_url(v) for v in variants}) == 1

    @pytest.mark.parametrize("url", ["", "   ", "ftp://example.com/file", "http://"])
    def test__normalize_url__rejects_invalid(self, url: str) -> None:
        """Non-web or hostless URLs raise InvalidUrlError."""
        with pytest.raises(InvalidUrlError):
            normalize_url(url)

    def test__invalid_url_error__is_value_error(self) -> None:
        """InvalidUrlError is a ValueError carrying the offending URL."""
        with pytest.raises(ValueError, match="ftp://x") as exc_info:
            normalize_url("ftp://x")
        assert exc_info.value.url == "ftp://x"


class TestExtractDomain:
    """Tests for extract_domain."""

    def test__extract_domain__returns_host(self) -> None:
        assert extract_domain("https://www.example.com/a/b?c=1") == "example.com"

    def test__extract_domain__keeps_non_default_port(self) -> None:
        assert extract_domain("http://localhost:8000/x") == "localhost:8000"
