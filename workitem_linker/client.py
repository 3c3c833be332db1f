"""Remote client interface for the work tracking and repository service."""

from abc import ABC, abstractmethod

from workitem_linker.models import PullRequestMatch, RepositoryRef, WorkItemRecord


class RemoteClient(ABC):
    """Abstract base class for remote work item and repository clients.

    Every operation may raise ``TransportError``. ``get_item`` raises
    ``WorkItemNotFoundError`` when the id does not resolve.
    """

    @abstractmethod
    async def get_item(self, item_id: int, expand_relations: bool = False) -> WorkItemRecord:
        """Fetch a work item, optionally with its relation records."""
        pass

    @abstractmethod
    async def list_branches(self, repository: RepositoryRef) -> list[str]:
        """List full ref names of all branches in a repository."""
        pass

    @abstractmethod
    async def list_active_review_requests(
        self, repository: RepositoryRef, source_branch: str
    ) -> list[PullRequestMatch]:
        """List active pull requests opened from a source branch."""
        pass

    @abstractmethod
    async def get_repository_default_branch(self, repository: RepositoryRef) -> str:
        """Get the default branch name of a repository, without ``refs/heads/``."""
        pass

    @abstractmethod
    async def get_branch_head(self, repository: RepositoryRef, branch: str) -> str | None:
        """Get the commit id a branch points at, or None if it does not exist."""
        pass

    @abstractmethod
    async def create_branch(self, repository: RepositoryRef, branch: str, object_id: str) -> None:
        """Create a branch pointing at a commit."""
        pass

    @abstractmethod
    async def get_current_user(self) -> str | None:
        """Get the identity the client is signed in as, or None if it cannot be determined."""
        pass

    @abstractmethod
    async def update_item_state(self, item_id: int, state: str, assigned_to: str | None = None) -> None:
        """Move a work item to a state, optionally assigning it."""
        pass

    @abstractmethod
    async def create_review_request(
        self,
        repository: RepositoryRef,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> PullRequestMatch:
        """Open a pull request from ``source_branch`` into ``target_branch``."""
        pass

    @abstractmethod
    async def link_review_request(self, repository: RepositoryRef, request_id: int, item_id: int) -> None:
        """Link a work item to a pull request."""
        pass
