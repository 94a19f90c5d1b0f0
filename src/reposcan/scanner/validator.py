"""GitHub repository URL validation. Pure syntax checks, no I/O."""

from __future__ import annotations

import re

MAX_URL_LENGTH = 2048
EXAMPLE_URL = "https://github.com/owner/repo"

_GITHUB_PREFIX = "https://github.com/"

# https://github.com/owner/repo with optional .git and trailing slash
_GITHUB_URL_RE = re.compile(
    r"^https://github\.com/"
    r"([A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)/"
    r"([A-Za-z0-9._-]+?)(?:\.git)?/?$"
)
# Owner names: alphanumeric and hyphens, no leading/trailing hyphen, max 39
_OWNER_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,37}[A-Za-z0-9])?$")
_REPO_RE = re.compile(r"^[A-Za-z0-9._-]+$")


class ValidationError(ValueError):
    """Structured URL validation failure, safe to show to callers."""

    def __init__(
        self,
        code: str,
        message: str,
        field: str = "repo_url",
        example: str = EXAMPLE_URL,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field
        self.example = example

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "example": self.example,
        }


def validate_github_url(url: str | None) -> None:
    """Raise ValidationError unless url is https://github.com/<owner>/<repo>."""
    url = (url or "").strip()
    if not url:
        raise ValidationError("EMPTY_URL", "repository URL cannot be empty")

    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(
            "URL_TOO_LONG",
            f"repository URL must be at most {MAX_URL_LENGTH} characters",
        )

    if not url.startswith("https://"):
        raise ValidationError(
            "INVALID_PROTOCOL", "repository URL must use HTTPS protocol"
        )

    if not url.startswith(_GITHUB_PREFIX):
        raise ValidationError("NOT_GITHUB", "URL must be a GitHub repository URL")

    match = _GITHUB_URL_RE.match(url)
    if match is None:
        raise ValidationError(
            "INVALID_FORMAT",
            f"invalid repository URL format. Use: {EXAMPLE_URL}",
        )

    owner, repo = match.groups()
    if not _OWNER_RE.match(owner):
        raise ValidationError(
            "INVALID_OWNER",
            f"invalid owner format: {owner}",
            field="owner",
            example="Valid owner names are alphanumeric with optional hyphens",
        )

    if not _REPO_RE.match(repo) or repo in (".", ".."):
        raise ValidationError(
            "INVALID_REPO",
            f"invalid repository name format: {repo}",
            field="repo",
            example=(
                "Valid repo names are alphanumeric with optional hyphens, "
                "underscores, or dots"
            ),
        )


def parse_github_url(url: str) -> tuple[str, str]:
    """Validate and return (owner, repo)."""
    validate_github_url(url)
    match = _GITHUB_URL_RE.match(url.strip())
    if match is None:
        raise ValidationError(
            "INVALID_FORMAT",
            f"invalid repository URL format. Use: {EXAMPLE_URL}",
        )
    return match.group(1), match.group(2)


def normalize_github_url(url: str) -> str:
    """Strip whitespace, a trailing slash and a .git suffix."""
    url = url.strip().removesuffix("/")
    return url.removesuffix(".git")

