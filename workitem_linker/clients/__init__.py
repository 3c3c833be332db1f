"""Remote client implementations."""

from workitem_linker.clients.azure_cli import AzureCliClient
from workitem_linker.clients.github import GitHubClient

__all__ = ["AzureCliClient", "GitHubClient"]
