"""Tests for GitHub URL validation."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from reposcan.scanner.validator import (
    MAX_URL_LENGTH,
    ValidationError,
    normalize_github_url,
    parse_github_url,
    validate_github_url,
)


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/owner/repo",
        "https://github.com/owner/repo.git",
        "https://github.com/owner/repo/",
        "https://github.com/my-org/my_repo.js",
        "  https://github.com/owner/repo  ",
        "https://github.com/a/b",
    ],
)
def test_accepts_valid_urls(url):
    validate_github_url(url)


@pytest.mark.parametrize(
    "url,code",
    [
        ("", "EMPTY_URL"),
        ("   ", "EMPTY_URL"),
        (None, "EMPTY_URL"),
        ("http://github.com/owner/repo", "INVALID_PROTOCOL"),
        ("git@github.com:owner/repo.git", "INVALID_PROTOCOL"),
        ("https://gitlab.com/owner/repo", "NOT_GITHUB"),
        ("https://github.com.evil.com/owner/repo", "NOT_GITHUB"),
        ("https://github.com/owner", "INVALID_FORMAT"),
        ("https://github.com/owner/repo/tree/main", "INVALID_FORMAT"),
        ("https://github.com/owner/repo?tab=readme", "INVALID_FORMAT"),
        ("https://github.com/-owner/repo", "INVALID_FORMAT"),
        ("https://github.com/owner/re po", "INVALID_FORMAT"),
        ("https://github.com/../repo", "INVALID_FORMAT"),
        ("https://github.com/" + "a" * 40 + "/repo", "INVALID_OWNER"),
        ("https://github.com/owner/..", "INVALID_REPO"),
    ],
)
def test_rejects_invalid_urls(url, code):
    with pytest.raises(ValidationError) as exc_info:
        validate_github_url(url)
    assert exc_info.value.code == code


def test_rejects_overlong_url():
    url = "https://github.com/owner/" + "r" * MAX_URL_LENGTH
    with pytest.raises(ValidationError) as exc_info:
        validate_github_url(url)
    assert exc_info.value.code == "URL_TOO_LONG"


def test_error_payload_shape():
    with pytest.raises(ValidationError) as exc_info:
        validate_github_url("ftp://example.com")
    payload = exc_info.value.to_dict()
    assert set(payload) == {"code", "message", "field", "example"}
    assert payload["field"] == "repo_url"
    assert payload["example"] == "https://github.com/owner/repo"


def test_owner_error_points_at_owner_field():
    with pytest.raises(ValidationError) as exc_info:
        validate_github_url("https://github.com/" + "x" * 45 + "/repo")
    assert exc_info.value.field == "owner"


class TestParse:
    def test_strips_git_suffix(self):
        assert parse_github_url("https://github.com/octo/hello.git") == ("octo", "hello")

    def test_keeps_dots_in_name(self):
        assert parse_github_url("https://github.com/octo/site.github.io/") == (
            "octo",
            "site.github.io",
        )

    def test_invalid_raises(self):
        with pytest.raises(ValidationError):
            parse_github_url("https://example.com/a/b")

    def test_unmatched_url_raises_without_validation(self):
        with patch("reposcan.scanner.validator.validate_github_url"):
            with pytest.raises(ValidationError) as exc_info:
                parse_github_url("https://github.com/octo/hello/tree/main")
        assert exc_info.value.code == "INVALID_FORMAT"


class TestNormalize:
    def test_trailing_slash_and_git(self):
        assert normalize_github_url(" https://github.com/o/r.git/ ") == "https://github.com/o/r"

    def test_already_normal(self):
        assert normalize_github_url("https://github.com/o/r") == "https://github.com/o/r"
