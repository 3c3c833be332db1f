"""GitHub client implementation using PyGithub.

Issues are work items. Sub-issue links map to hierarchy relations and issue
dependencies (blocked by / blocking) map to related links. PyGithub is
blocking, so every call runs in a worker thread.
"""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import requests
import structlog
from github import Auth, Github, GithubException, UnknownObjectException
from github.Repository import Repository

from workitem_linker.client import RemoteClient
from workitem_linker.errors import ConfigurationError, TransportError, WorkItemNotFoundError
from workitem_linker.models import (
    PullRequestMatch,
    RawRelation,
    RepositoryRef,
    WorkItemIdentity,
    WorkItemRecord,
)
from workitem_linker.naming import HEADS_PREFIX

logger = structlog.get_logger()

T = TypeVar("T")

PARENT_REL = "GitHub.SubIssue.Hierarchy-Reverse"
CHILD_REL = "GitHub.SubIssue.Hierarchy-Forward"
BLOCKED_BY_REL = "GitHub.Dependency.Related.BlockedBy"
BLOCKING_REL = "GitHub.Dependency.Related.Blocking"

CLOSED_STATES = frozenset({"closed", "done", "resolved", "removed"})


def _transport_error(error: Exception) -> TransportError:
    if isinstance(error, GithubException):
        logger.error("GitHub API request failed", status=error.status, error=str(error))
        return TransportError(f"GitHub API error {error.status}: {error.data}")
    logger.error("GitHub request failed", error=str(error))
    return TransportError(f"GitHub request failed: {error}")


class GitHubClient(RemoteClient):
    """GitHub-based client using issues as work items."""

    def __init__(self, owner: str, repo: str, token: str | None = None) -> None:
        """Initialize GitHub client.

        Args:
            owner: Repository owner
            repo: Repository name
            token: GitHub personal access token
        """
        self.owner = owner
        self.repo = repo
        self.token = token
        if not self.token:
            raise ConfigurationError("GitHub token required")

        logger.debug("Initializing GitHub client", owner=owner, repo=repo)
        auth = Auth.Token(self.token)
        self.client = Github(auth=auth)
        try:
            self.repository: Repository = self.client.get_repo(f"{owner}/{repo}")
        except (GithubException, requests.exceptions.RequestException) as e:
            raise _transport_error(e) from e
        self._repositories: dict[str, Repository] = {f"{owner}/{repo}": self.repository}
        logger.info("GitHub client initialized", owner=owner, repo=repo)

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking PyGithub call in a thread, translating API and network errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except (GithubException, requests.exceptions.RequestException) as e:
            raise _transport_error(e) from e

    def _repository_for(self, repository: RepositoryRef) -> Repository:
        full_name = f"{repository.project}/{repository.repository}"
        if full_name not in self._repositories:
            self._repositories[full_name] = self.client.get_repo(full_name)
        return self._repositories[full_name]

    def _request_json(self, path: str, optional: bool = False) -> Any:
        """Call a REST endpoint PyGithub has no wrapper for; 404 yields None when ``optional``."""
        requester = self.client._Github__requester
        try:
            _, data = requester.requestJsonAndCheck("GET", path, parameters={"per_page": 100})
        except UnknownObjectException:
            if optional:
                return None
            raise
        return data

    def _list_relations(self, number: int) -> tuple[RawRelation, ...]:
        base = f"/repos/{self.owner}/{self.repo}/issues/{number}"
        relations: list[RawRelation] = []

        parent = self._request_json(f"{base}/parent", optional=True)
        if parent:
            relations.append(RawRelation(rel=PARENT_REL, target_id=int(parent["number"])))

        for sub_issue in self._request_json(f"{base}/sub_issues", optional=True) or []:
            relations.append(RawRelation(rel=CHILD_REL, target_id=int(sub_issue["number"])))

        for blocking_issue in self._request_json(f"{base}/dependencies/blocked_by", optional=True) or []:
            relations.append(RawRelation(rel=BLOCKED_BY_REL, target_id=int(blocking_issue["number"])))

        for blocked_issue in self._request_json(f"{base}/dependencies/blocking", optional=True) or []:
            relations.append(RawRelation(rel=BLOCKING_REL, target_id=int(blocked_issue["number"])))

        logger.debug("Retrieved issue relations", number=number, count=len(relations))
        return tuple(relations)

    def _get_item(self, item_id: int, expand_relations: bool) -> WorkItemRecord:
        logger.debug("Reading GitHub issue", item_id=item_id, expand_relations=expand_relations)
        try:
            issue = self.repository.get_issue(number=item_id)
        except UnknownObjectException as e:
            raise WorkItemNotFoundError(item_id) from e

        identity = WorkItemIdentity(
            id=issue.number,
            title=issue.title,
            type="Pull Request" if issue.pull_request else "Issue",
            state=issue.state.lower(),
            project=f"{self.owner}/{self.repo}",
            description=issue.body,
        )
        relations = self._list_relations(issue.number) if expand_relations else ()
        return WorkItemRecord(identity=identity, relations=relations)

    async def get_item(self, item_id: int, expand_relations: bool = False) -> WorkItemRecord:
        """Fetch a GitHub issue, optionally with its sub-issue and dependency links."""
        return await self._call(self._get_item, item_id, expand_relations)

    def _list_branches(self, repository: RepositoryRef) -> list[str]:
        return [ref.ref for ref in self._repository_for(repository).get_git_matching_refs("heads/")]

    async def list_branches(self, repository: RepositoryRef) -> list[str]:
        """List branch refs of a repository."""
        return await self._call(self._list_branches, repository)

    def _list_active_review_requests(self, repository: RepositoryRef, source_branch: str) -> list[PullRequestMatch]:
        pulls = self._repository_for(repository).get_pulls(state="open", head=f"{repository.project}:{source_branch}")
        return [
            PullRequestMatch(
                request_id=pull.number,
                title=pull.title,
                project=repository.project,
                source_branch=pull.head.ref,
            )
            for pull in pulls
        ]

    async def list_active_review_requests(
        self, repository: RepositoryRef, source_branch: str
    ) -> list[PullRequestMatch]:
        """List open pull requests whose head is the source branch."""
        return await self._call(self._list_active_review_requests, repository, source_branch)

    async def get_repository_default_branch(self, repository: RepositoryRef) -> str:
        """Get the default branch of a repository."""
        repo = await self._call(self._repository_for, repository)
        return repo.default_branch

    def _get_branch_head(self, repository: RepositoryRef, branch: str) -> str | None:
        try:
            ref = self._repository_for(repository).get_git_ref(f"heads/{branch}")
        except UnknownObjectException:
            return None
        return ref.object.sha

    async def get_branch_head(self, repository: RepositoryRef, branch: str) -> str | None:
        """Get the commit sha of a branch, or None if it does not exist."""
        return await self._call(self._get_branch_head, repository, branch)

    def _create_branch(self, repository: RepositoryRef, branch: str, object_id: str) -> None:
        self._repository_for(repository).create_git_ref(ref=f"{HEADS_PREFIX}{branch}", sha=object_id)

    async def create_branch(self, repository: RepositoryRef, branch: str, object_id: str) -> None:
        """Create a branch pointing at a commit."""
        logger.info("Creating branch", branch=branch, repository=repository.key)
        await self._call(self._create_branch, repository, branch, object_id)

    async def get_current_user(self) -> str | None:
        """Get the login of the token's user."""
        try:
            user = await self._call(self.client.get_user)
        except TransportError as e:
            logger.warning("Failed to get current user", error=str(e))
            return None
        return user.login or None

    def _update_item_state(self, item_id: int, state: str, assigned_to: str | None) -> None:
        try:
            issue = self.repository.get_issue(number=item_id)
        except UnknownObjectException as e:
            raise WorkItemNotFoundError(item_id) from e

        github_state = "closed" if state.lower() in CLOSED_STATES else "open"
        if assigned_to:
            issue.edit(state=github_state, assignees=[assigned_to])
        else:
            issue.edit(state=github_state)

    async def update_item_state(self, item_id: int, state: str, assigned_to: str | None = None) -> None:
        """Open or close an issue and optionally assign it.

        GitHub issues only have open and closed states, so ``state`` is mapped
        onto one of them.
        """
        logger.info("Updating issue state", item_id=item_id, state=state, assigned_to=assigned_to)
        await self._call(self._update_item_state, item_id, state, assigned_to)

    def _create_review_request(
        self,
        repository: RepositoryRef,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> PullRequestMatch:
        pull = self._repository_for(repository).create_pull(
            title=title, body=description, base=target_branch, head=source_branch
        )
        return PullRequestMatch(
            request_id=pull.number,
            title=pull.title,
            project=repository.project,
            source_branch=pull.head.ref,
        )

    async def create_review_request(
        self,
        repository: RepositoryRef,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> PullRequestMatch:
        """Open a pull request."""
        logger.info("Creating pull request", source_branch=source_branch, target_branch=target_branch)
        return await self._call(
            self._create_review_request, repository, source_branch, target_branch, title, description
        )

    def _link_review_request(self, repository: RepositoryRef, request_id: int, item_id: int) -> None:
        pull = self._repository_for(repository).get_pull(request_id)
        same_repository = (repository.project, repository.repository) == (self.owner, self.repo)
        reference = f"#{item_id}" if same_repository else f"{self.owner}/{self.repo}#{item_id}"
        keyword = f"Resolves {reference}"
        body = pull.body or ""
        if keyword not in body:
            pull.edit(body=f"{body}\n\n{keyword}".strip())

    async def link_review_request(self, repository: RepositoryRef, request_id: int, item_id: int) -> None:
        """Link an issue to a pull request with a closing keyword in the pull request body."""
        await self._call(self._link_review_request, repository, request_id, item_id)
