"""Correlation of work items with remote branches and pull requests."""

import structlog

from workitem_linker.client import RemoteClient
from workitem_linker.errors import BranchError, TransportError
from workitem_linker.lookup import DEFAULT_BRANCH_CACHE, DefaultBranchCache
from workitem_linker.models import (
    BranchCandidate,
    BranchCreation,
    CandidateSet,
    PullRequestMatch,
    RepositoryRef,
    ReviewRequestCreation,
    ReviewRequestSearch,
    WorkItemIdentity,
)
from workitem_linker.naming import encode, is_head_ref, matches, strip_heads_prefix

logger = structlog.get_logger()

FALLBACK_DEFAULT_BRANCH = "main"


class BranchMatcher:
    """Finds the branches and pull requests that belong to a work item.

    Args:
        client: Remote client used for branch and pull request queries
        repository: Repository the branches live in
        default_branches: Cache for repository default branches
    """

    def __init__(
        self,
        client: RemoteClient,
        repository: RepositoryRef,
        default_branches: DefaultBranchCache = DEFAULT_BRANCH_CACHE,
    ) -> None:
        self.client = client
        self.repository = repository
        self.default_branches = default_branches

    async def collect_candidates(self, item_id: int, title: str, prefix: str = "") -> CandidateSet:
        """Collect the canonical branch name plus every remote branch matching the work item.

        The canonical name always comes first and is present even when the
        branch does not exist remotely. If branches cannot be listed, the
        canonical name is the only candidate and a warning is recorded.
        """
        canonical = encode(item_id, title, prefix)
        candidates = [BranchCandidate(name=canonical, canonical=True)]
        seen = {canonical.lower()}
        warnings: list[str] = []

        try:
            refs = await self.client.list_branches(self.repository)
        except TransportError as e:
            logger.warning("Failed to list remote branches", repository=self.repository.key, error=str(e))
            warnings.append(f"Could not list branches of {self.repository.repository}: {e}")
            refs = []

        for ref in refs:
            if not is_head_ref(ref) or not matches(ref, item_id, title):
                continue
            name = strip_heads_prefix(ref)
            if name.lower() in seen:
                continue
            seen.add(name.lower())
            candidates.append(BranchCandidate(name=name))

        logger.debug("Collected candidate branches", item_id=item_id, candidates=[c.name for c in candidates])
        return CandidateSet(candidates=tuple(candidates), warnings=tuple(warnings))

    async def candidate_branches(self, item_id: int, title: str, prefix: str = "") -> list[BranchCandidate]:
        """Return candidate branches for a work item, canonical name first."""
        candidate_set = await self.collect_candidates(item_id, title, prefix)
        return list(candidate_set.candidates)

    async def search_review_requests(self, item_id: int, title: str, prefix: str = "") -> ReviewRequestSearch:
        """Scan candidate branches in order and stop at the first active pull request.

        A failed query for one branch is recorded as a warning and the scan
        moves on to the next candidate.
        """
        candidate_set = await self.collect_candidates(item_id, title, prefix)
        warnings = list(candidate_set.warnings)
        checked: list[str] = []

        for candidate in candidate_set.candidates:
            checked.append(candidate.name)
            try:
                requests = await self.client.list_active_review_requests(self.repository, candidate.name)
            except TransportError as e:
                logger.warning("Pull request query failed", branch=candidate.name, error=str(e))
                warnings.append(f"Could not check pull requests for {candidate.name}: {e}")
                continue

            if requests:
                match = requests[0]
                logger.info(
                    "Found active pull request", item_id=item_id, request_id=match.request_id, branch=candidate.name
                )
                return ReviewRequestSearch(match=match, checked=tuple(checked), warnings=tuple(warnings))

        logger.info("No active pull request found", item_id=item_id, checked_count=len(checked))
        return ReviewRequestSearch(match=None, checked=tuple(checked), warnings=tuple(warnings))

    async def find_active_review_request(self, item_id: int, title: str, prefix: str = "") -> PullRequestMatch | None:
        """Return the first active pull request opened from any candidate branch."""
        search = await self.search_review_requests(item_id, title, prefix)
        return search.match

    async def default_branch(self) -> str:
        """Get the repository default branch, falling back to ``main`` when it cannot be read."""
        key = self.repository.key
        cached = self.default_branches.get(key)
        if cached is not None:
            return cached

        try:
            branch = strip_heads_prefix(await self.client.get_repository_default_branch(self.repository))
        except TransportError as e:
            logger.warning("Failed to get repository default branch", repository=key, error=str(e))
            return FALLBACK_DEFAULT_BRANCH

        branch = branch or FALLBACK_DEFAULT_BRANCH
        self.default_branches.set(key, branch)
        logger.debug("Repository default branch", repository=key, branch=branch)
        return branch

    async def target_branch(self, source_branch: str | None = None) -> str:
        """Branch new work branches start from: the configured one, else the repository default."""
        if source_branch:
            return source_branch
        return await self.default_branch()

    async def ensure_branch(
        self,
        item_id: int,
        title: str,
        prefix: str = "",
        source_branch: str | None = None,
    ) -> BranchCreation:
        """Create the canonical branch for a work item unless it already exists.

        Raises:
            BranchError: The source branch does not exist or equals the new branch
        """
        candidate_set = await self.collect_candidates(item_id, title, prefix)
        name = candidate_set.candidates[0].name
        others = tuple(candidate.name for candidate in candidate_set.candidates[1:])

        if await self.client.get_branch_head(self.repository, name) is not None:
            logger.info("Branch already exists", branch=name)
            return BranchCreation(name=name, created=False, existing=others)

        source = await self.target_branch(source_branch)
        if source == name:
            raise BranchError(f"Source branch '{source}' cannot be the branch being created")

        object_id = await self.client.get_branch_head(self.repository, source)
        if not object_id:
            raise BranchError(f"Source branch '{source}' not found")

        logger.info("Creating branch", branch=name, source_branch=source, object_id=object_id)
        await self.client.create_branch(self.repository, name, object_id)
        return BranchCreation(name=name, created=True, source_branch=source, object_id=object_id, existing=others)

    async def open_review_request(
        self,
        item: WorkItemIdentity,
        prefix: str = "",
        target_branch: str | None = None,
    ) -> ReviewRequestCreation:
        """Open a pull request from the canonical branch and link the work item to it.

        The title is ``"<id>: <title>"``. A failure to link the work item after
        the pull request exists is recorded as a warning.

        Raises:
            BranchError: The canonical branch does not exist or is the target branch
        """
        source = encode(item.id, item.title, prefix)
        target = await self.target_branch(target_branch)
        if source == target:
            raise BranchError(f"Source branch ({source}) cannot be the same as target branch ({target})")
        if await self.client.get_branch_head(self.repository, source) is None:
            raise BranchError(f"Branch '{source}' does not exist; create it with 'wil start {item.id}'")

        match = await self.client.create_review_request(
            self.repository,
            source,
            target,
            title=f"{item.id}: {item.title}",
            description=review_request_description(item),
        )
        logger.info("Created pull request", item_id=item.id, request_id=match.request_id, target_branch=target)

        warnings: list[str] = []
        try:
            await self.client.link_review_request(self.repository, match.request_id, item.id)
        except TransportError as e:
            logger.warning("Failed to link work item to pull request", item_id=item.id, error=str(e))
            warnings.append(f"Pull request #{match.request_id} created but linking work item {item.id} failed: {e}")
            return ReviewRequestCreation(match=match, target_branch=target, linked=False, warnings=tuple(warnings))

        return ReviewRequestCreation(match=match, target_branch=target, linked=True)


def review_request_description(item: WorkItemIdentity) -> str:
    """Plain-text pull request description summarizing the work item."""
    lines = [f"Work item #{item.id}" + (f" - {item.type}" if item.type else ""), "", f"Title: {item.title}"]
    if item.type:
        lines.append(f"Type: {item.type}")
    if item.state:
        lines.append(f"State: {item.state}")
    return "\n".join(lines)
