"""Azure DevOps client implementation using the az CLI."""

import asyncio
import json
import re
from typing import Any

import structlog

from workitem_linker.client import RemoteClient
from workitem_linker.errors import TransportError, WorkItemNotFoundError
from workitem_linker.models import (
    PullRequestMatch,
    RawRelation,
    RepositoryRef,
    WorkItemIdentity,
    WorkItemRecord,
)
from workitem_linker.naming import HEADS_PREFIX, strip_heads_prefix

logger = structlog.get_logger()

_WORK_ITEM_URL_RE = re.compile(r"workItems/(\d+)", re.IGNORECASE)
_NOT_FOUND_RE = re.compile(r"TF401232|does not exist", re.IGNORECASE)


class AzCommandError(TransportError):
    """An az command exited with a non-zero status."""

    def __init__(self, cmd: list[str], returncode: int | None, stderr: str) -> None:
        super().__init__(f"az {' '.join(cmd[1:3])} failed with exit code {returncode}: {stderr}")
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr


def extract_work_item_id(url: str) -> int | None:
    """Extract the target work item id from a relation URL."""
    match = _WORK_ITEM_URL_RE.search(url or "")
    return int(match.group(1)) if match else None


def parse_work_item(payload: Any, item_id: int) -> WorkItemRecord:
    """Validate a ``az boards work-item show`` payload into a WorkItemRecord."""
    if not isinstance(payload, dict):
        raise TransportError(f"Unexpected response for work item {item_id}")

    fields = payload.get("fields") or {}
    identity = WorkItemIdentity(
        id=int(payload.get("id") or item_id),
        title=fields.get("System.Title") or "Untitled",
        type=fields.get("System.WorkItemType") or "",
        state=fields.get("System.State") or "",
        project=fields.get("System.TeamProject") or "",
        description=fields.get("System.Description"),
    )

    relations = []
    for relation in payload.get("relations") or []:
        if not isinstance(relation, dict):
            continue
        relations.append(
            RawRelation(
                rel=str(relation.get("rel") or ""),
                target_id=extract_work_item_id(str(relation.get("url") or "")),
            )
        )
    return WorkItemRecord(identity=identity, relations=tuple(relations))


def _parse_pull_request(pr: Any, repository: RepositoryRef, source_branch: str) -> PullRequestMatch | None:
    if not isinstance(pr, dict) or pr.get("pullRequestId") is None:
        return None
    project = ((pr.get("repository") or {}).get("project") or {}).get("name") or repository.project
    return PullRequestMatch(
        request_id=int(pr["pullRequestId"]),
        title=pr.get("title") or "",
        project=project,
        source_branch=strip_heads_prefix(pr.get("sourceRefName") or source_branch),
    )


class AzureCliClient(RemoteClient):
    """Azure DevOps client driving the az CLI with the azure-devops extension."""

    def __init__(self, organization: str | None = None, az_path: str = "az", timeout: float | None = None) -> None:
        """Initialize the az CLI client.

        Args:
            organization: Organization URL passed to work item commands
            az_path: Path to the az executable
            timeout: Seconds to wait for each az command, None waits indefinitely
        """
        self.organization = organization
        self.az_path = az_path
        self.timeout = timeout
        logger.debug("Initializing az CLI client", organization=organization, az_path=az_path)

    async def _run_az(self, args: list[str]) -> Any:
        """Run an az command and return its parsed JSON output.

        Args:
            args: Command arguments (excluding 'az')

        Returns:
            Parsed JSON output or None if no output
        """
        cmd = [self.az_path] + args
        logger.debug("Running az command", cmd=cmd)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to start az", az_path=self.az_path, error=str(e))
            raise TransportError(f"Failed to start {self.az_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            logger.error("az command timed out", cmd=cmd, timeout=self.timeout)
            raise TransportError(f"az command timed out after {self.timeout}s") from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            logger.error("az command failed", cmd=cmd, stderr=message, returncode=process.returncode)
            raise AzCommandError(cmd, process.returncode, message)

        output = stdout.decode("utf-8", errors="replace").strip()
        if not output:
            return None
        try:
            result = json.loads(output)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse az JSON output", stdout=output, error=str(e))
            raise TransportError(f"Failed to parse az output: {e}") from e
        logger.debug("az command completed", output_length=len(output))
        return result

    def _organization_args(self) -> list[str]:
        return ["--organization", self.organization] if self.organization else []

    def _repository_args(self, repository: RepositoryRef) -> list[str]:
        return [
            "--repository",
            repository.repository,
            "--organization",
            repository.organization,
            "--project",
            repository.project,
        ]

    async def get_item(self, item_id: int, expand_relations: bool = False) -> WorkItemRecord:
        """Fetch a work item with ``az boards work-item show``."""
        args = ["boards", "work-item", "show", "--id", str(item_id), "--output", "json"]
        if expand_relations:
            args.extend(["--expand", "relations"])
        args.extend(self._organization_args())

        try:
            payload = await self._run_az(args)
        except AzCommandError as e:
            if _NOT_FOUND_RE.search(e.stderr):
                raise WorkItemNotFoundError(item_id) from e
            raise
        return parse_work_item(payload, item_id)

    async def list_branches(self, repository: RepositoryRef) -> list[str]:
        """List branch refs with ``az repos ref list --filter heads/``."""
        refs = await self._run_az(
            ["repos", "ref", "list", "--filter", "heads/", "--output", "json"] + self._repository_args(repository)
        )
        if not isinstance(refs, list):
            return []
        return [ref["name"] for ref in refs if isinstance(ref, dict) and ref.get("name")]

    async def list_active_review_requests(
        self, repository: RepositoryRef, source_branch: str
    ) -> list[PullRequestMatch]:
        """List active pull requests with ``az repos pr list``."""
        prs = await self._run_az(
            ["repos", "pr", "list", "--source-branch", source_branch, "--status", "active", "--output", "json"]
            + self._repository_args(repository)
        )
        if not isinstance(prs, list):
            return []

        matches = []
        for pr in prs:
            match = _parse_pull_request(pr, repository, source_branch)
            if match is not None:
                matches.append(match)
        return matches

    async def get_repository_default_branch(self, repository: RepositoryRef) -> str:
        """Read the default branch with ``az repos show``."""
        repo = await self._run_az(["repos", "show", "--output", "json"] + self._repository_args(repository))
        if not isinstance(repo, dict):
            raise TransportError(f"Unexpected response for repository {repository.repository}")
        return strip_heads_prefix(repo.get("defaultBranch") or "")

    async def get_branch_head(self, repository: RepositoryRef, branch: str) -> str | None:
        """Look up a branch's commit id; ``--filter`` is a prefix match so the name is compared exactly."""
        refs = await self._run_az(
            ["repos", "ref", "list", "--filter", f"heads/{branch}", "--output", "json"]
            + self._repository_args(repository)
        )
        wanted = f"{HEADS_PREFIX}{branch}"
        for ref in refs or []:
            if isinstance(ref, dict) and ref.get("name") == wanted:
                return ref.get("objectId")
        return None

    async def create_branch(self, repository: RepositoryRef, branch: str, object_id: str) -> None:
        """Create a branch with ``az repos ref create``."""
        logger.info("Creating branch", branch=branch, repository=repository.key)
        await self._run_az(
            [
                "repos",
                "ref",
                "create",
                "--name",
                f"{HEADS_PREFIX}{branch}",
                "--object-id",
                object_id,
                "--output",
                "json",
            ]
            + self._repository_args(repository)
        )

    async def get_current_user(self) -> str | None:
        """Read the signed-in user with ``az account show``."""
        try:
            user = await self._run_az(["account", "show", "--query", "user.name", "--output", "json"])
        except TransportError as e:
            logger.warning("Failed to get current user", error=str(e))
            return None
        if not isinstance(user, str) or not user.strip():
            return None
        return user.strip()

    async def update_item_state(self, item_id: int, state: str, assigned_to: str | None = None) -> None:
        """Update state and assignee with ``az boards work-item update``."""
        args = ["boards", "work-item", "update", "--id", str(item_id), "--state", state]
        if assigned_to:
            args.extend(["--assigned-to", assigned_to])
        args.extend(["--output", "json"])
        args.extend(self._organization_args())

        logger.info("Updating work item state", item_id=item_id, state=state, assigned_to=assigned_to)
        try:
            await self._run_az(args)
        except AzCommandError as e:
            if _NOT_FOUND_RE.search(e.stderr):
                raise WorkItemNotFoundError(item_id) from e
            raise

    async def create_review_request(
        self,
        repository: RepositoryRef,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> PullRequestMatch:
        """Open a pull request with ``az repos pr create``."""
        logger.info("Creating pull request", source_branch=source_branch, target_branch=target_branch)
        pr = await self._run_az(
            [
                "repos",
                "pr",
                "create",
                "--source-branch",
                source_branch,
                "--target-branch",
                target_branch,
                "--title",
                title,
                "--description",
                description,
                "--output",
                "json",
            ]
            + self._repository_args(repository)
        )
        match = _parse_pull_request(pr, repository, source_branch)
        if match is None:
            raise TransportError(f"Unexpected response creating a pull request from {source_branch}")
        return match

    async def link_review_request(self, repository: RepositoryRef, request_id: int, item_id: int) -> None:
        """Link a work item with ``az repos pr work-item add``."""
        await self._run_az(
            [
                "repos",
                "pr",
                "work-item",
                "add",
                "--id",
                str(request_id),
                "--work-items",
                str(item_id),
                "--output",
                "json",
                "--organization",
                repository.organization,
            ]
        )
