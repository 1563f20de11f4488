"""Adapters for external systems."""

from clearcurate.adapters.github import GitHubClient, RepositoryApi

__all__ = ["GitHubClient", "RepositoryApi"]
