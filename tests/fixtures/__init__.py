"""Test fixtures for DevMetrics DB."""

from .github_responses import (
    GITHUB_COMMIT_DETAIL_RESPONSE,
    GITHUB_COMMIT_LIST_RESPONSE,
    GITHUB_PR_CLOSED_RESPONSE,
    GITHUB_PR_DRAFT_RESPONSE,
    GITHUB_PR_MERGED_RESPONSE,
    GITHUB_PR_RESPONSE,
    GITHUB_REPOSITORY_RESPONSE,
    GITHUB_USER_RESPONSE,
)

__all__ = [
    "GITHUB_COMMIT_DETAIL_RESPONSE",
    "GITHUB_COMMIT_LIST_RESPONSE",
    "GITHUB_PR_CLOSED_RESPONSE",
    "GITHUB_PR_DRAFT_RESPONSE",
    "GITHUB_PR_MERGED_RESPONSE",
    "GITHUB_PR_RESPONSE",
    "GITHUB_REPOSITORY_RESPONSE",
    "GITHUB_USER_RESPONSE",
]
