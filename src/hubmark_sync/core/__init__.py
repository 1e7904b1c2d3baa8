"""Remote transport for the GitHub contents API."""

from .client import GitHubClient, GitHubFile

__all__ = ["GitHubClient", "GitHubFile"]
