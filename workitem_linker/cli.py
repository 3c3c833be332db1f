"""CLI for workitem linker."""

import asyncio
import sys
from collections.abc import Coroutine
from typing import Annotated, Any, Literal, TypeVar

import structlog
from cyclopts import App, Parameter

from workitem_linker.activation import activate_work_item
from workitem_linker.branches import BranchMatcher
from workitem_linker.client import RemoteClient
from workitem_linker.clients import AzureCliClient, GitHubClient
from workitem_linker.config import LinkerSettings, get_config
from workitem_linker.config_commands import config_app
from workitem_linker.context import build_context
from workitem_linker.errors import ConfigurationError, WorkItemLinkerError
from workitem_linker.lookup import DEFAULT_BRANCH_CACHE, DefaultBranchCache
from workitem_linker.models import (
    BranchCreation,
    CandidateSet,
    RelationGraph,
    RepositoryRef,
    ReviewRequestCreation,
    ReviewRequestSearch,
    WorkItemIdentity,
)
from workitem_linker.naming import encode
from workitem_linker.relations import DEFAULT_MAX_DEPTH, RelationGraphResolver
from workitem_linker.urls import build_pull_request_url, build_work_item_url

logger = structlog.get_logger()

T = TypeVar("T")

app = App(
    name="wil",
    help="Workitem Linker - Connect work items with branches and pull requests",
)

app.command(config_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_settings() -> LinkerSettings:
    """Get settings from the local and global configuration."""
    return LinkerSettings.from_config(get_config())


def get_client(settings: LinkerSettings) -> RemoteClient:
    """Get the configured remote client."""
    if settings.backend == "azure":
        return AzureCliClient(organization=settings.organization)
    elif settings.backend == "github":
        if not settings.project or not settings.repository:
            raise ConfigurationError(
                "GitHub owner and repo not configured. Set them using:\n"
                "  wil config set github.owner <owner>\n"
                "  wil config set github.repository <repo>"
            )
        return GitHubClient(owner=settings.project, repo=settings.repository, token=settings.github_token)
    else:
        raise ConfigurationError(f"Unknown backend: {settings.backend}")


def get_matcher(client: RemoteClient, settings: LinkerSettings) -> BranchMatcher:
    """Get a branch matcher for the configured repository."""
    cache = DEFAULT_BRANCH_CACHE
    if settings.default_branch_ttl is not None:
        cache = DefaultBranchCache(ttl=settings.default_branch_ttl)
    return BranchMatcher(client, settings.repository_ref(), default_branches=cache)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning workitem linker errors into an exit status.

    Commands build their settings and client inside the coroutine so that
    configuration errors are reported the same way as remote failures.
    """
    try:
        return asyncio.run(coro)
    except WorkItemLinkerError as e:
        logger.debug("Command failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _print_warnings(warnings: tuple[str, ...]) -> None:
    for warning in warnings:
        print(f"Warning: {warning}", file=sys.stderr)


def _format_item(item: WorkItemIdentity) -> str:
    details = " • ".join(part for part in (item.type, item.state) if part)
    return f"{item.id} {item.title}" + (f" ({details})" if details else "")


async def _load_item(client: RemoteClient, item_id: int) -> WorkItemIdentity:
    record = await client.get_item(item_id)
    return record.identity


@app.command
def branch(item_id: int, title: str | None = None, prefix: str | None = None) -> None:
    """Print the canonical branch name for a work item.

    Args:
        item_id: Work item ID
        title: Work item title; fetched from the remote service when omitted
        prefix: Branch prefix; defaults to the configured branch.prefix
    """

    async def derive() -> str:
        settings = get_settings()
        item_title = title
        if item_title is None:
            item_title = (await _load_item(get_client(settings), item_id)).title
        return encode(item_id, item_title, settings.branch_prefix if prefix is None else prefix)

    print(_run(derive()))


@app.command
def branches(item_id: int) -> None:
    """List branches that belong to a work item."""

    async def collect() -> CandidateSet:
        settings = get_settings()
        client = get_client(settings)
        matcher = get_matcher(client, settings)
        item = await _load_item(client, item_id)
        return await matcher.collect_candidates(item.id, item.title, settings.branch_prefix)

    candidate_set = _run(collect())
    _print_warnings(candidate_set.warnings)

    print(f"Branches for work item {item_id}:\n")
    for candidate in candidate_set.candidates:
        marker = "*" if candidate.canonical else " "
        print(f"{marker} {candidate.name}")


@app.command
def pr(item_id: int, create: bool = False, target: str | None = None) -> None:
    """Find the active pull request for a work item, optionally creating one.

    Args:
        item_id: Work item ID
        create: Open a pull request from the canonical branch when none is active
        target: Branch to merge into; defaults to branch.source, then the repository default branch
    """

    async def search() -> tuple[LinkerSettings, RepositoryRef, ReviewRequestSearch, ReviewRequestCreation | None]:
        settings = get_settings()
        client = get_client(settings)
        matcher = get_matcher(client, settings)
        item = await _load_item(client, item_id)
        result = await matcher.search_review_requests(item.id, item.title, settings.branch_prefix)
        creation = None
        if result.match is None and create:
            creation = await matcher.open_review_request(
                item, settings.branch_prefix, target_branch=target or settings.source_branch
            )
        return settings, matcher.repository, result, creation

    settings, repository, result, creation = _run(search())
    _print_warnings(result.warnings)

    if creation is not None:
        _print_warnings(creation.warnings)
        match = creation.match
        print(f"Created PR #{match.request_id}: {match.title}")
        print(f"Branch: {match.source_branch} -> {creation.target_branch}")
    elif result.match is not None:
        match = result.match
        print(f"PR #{match.request_id}: {match.title}")
        print(f"Branch: {match.source_branch}")
    else:
        print(f"No active pull request found for work item {item_id} (checked {len(result.checked)} branch(es))")
        return

    if settings.backend == "azure":
        url = build_pull_request_url(repository.organization, match.project, repository.repository, match.request_id)
        print(f"URL: {url}")


@app.command
def relations(item_id: int, ancestors: bool = False) -> None:
    """Display the parent, siblings, children and related items of a work item.

    Args:
        item_id: Work item ID
        ancestors: Also walk parent links up towards the root
    """

    async def resolve() -> tuple[LinkerSettings, RelationGraph]:
        settings = get_settings()
        resolver = RelationGraphResolver(get_client(settings), fan_out_limit=settings.fan_out_limit)
        graph = await resolver.resolve(item_id, ancestor_depth=DEFAULT_MAX_DEPTH if ancestors else 0)
        return settings, graph

    settings, graph = _run(resolve())
    _print_warnings(graph.warnings)

    if graph.item is not None:
        print(f"Work item: {_format_item(graph.item)}")
        if settings.backend == "azure" and settings.organization:
            print(f"URL: {build_work_item_url(settings.organization, graph.item.project, graph.item.id)}")
        print()

    if graph.ancestors:
        print("Ancestors:")
        for depth, ancestor in enumerate(graph.ancestors):
            print(f"  {'  ' * depth}^ {_format_item(ancestor)}")
        print()

    sections = {
        "Parent": [graph.parent] if graph.parent else [],
        "Siblings": graph.siblings,
        "Children": graph.children,
        "Related": graph.related,
    }
    for display_name, items in sections.items():
        if not items:
            continue
        print(f"{display_name}:")
        for item in items:
            print(f"  - {_format_item(item)}")
        print()

    if graph.is_empty:
        print("No related items found.")


@app.command
def context(item_id: int) -> None:
    """Print a plain-text context block for a work item and its relations."""

    async def resolve() -> RelationGraph:
        settings = get_settings()
        resolver = RelationGraphResolver(get_client(settings), fan_out_limit=settings.fan_out_limit)
        return await resolver.resolve(item_id)

    graph = _run(resolve())
    _print_warnings(graph.warnings)
    print(build_context(graph))


@app.command
def start(item_id: int, source: str | None = None, activate: bool = False) -> None:
    """Create the canonical branch for a work item unless it already exists.

    Args:
        item_id: Work item ID
        source: Branch to start from; defaults to branch.source, then the repository default branch
        activate: Also move the work item to the active state and assign it to the current user
    """

    async def ensure() -> tuple[str | None, BranchCreation]:
        settings = get_settings()
        client = get_client(settings)
        matcher = get_matcher(client, settings)
        item = await _load_item(client, item_id)
        assignee = None
        if activate:
            assignee = await activate_work_item(client, item.id, state=settings.active_state)
        creation = await matcher.ensure_branch(
            item.id, item.title, settings.branch_prefix, source_branch=source or settings.source_branch
        )
        return assignee, creation

    assignee, creation = _run(ensure())
    if assignee:
        print(f"Activated work item {item_id} (assigned to {assignee})")
    if creation.created:
        print(f"Created branch {creation.name} from {creation.source_branch}")
    else:
        print(f"Branch {creation.name} already exists")
    if creation.existing:
        print("Other branches for this work item: " + ", ".join(creation.existing))


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    app(tokens)


if __name__ == "__main__":
    app.meta()
