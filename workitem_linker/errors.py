"""Exceptions raised by workitem linker."""


class WorkItemLinkerError(Exception):
    """Base class for all workitem linker errors."""


class TransportError(WorkItemLinkerError):
    """A call to the remote service failed."""


class WorkItemNotFoundError(TransportError):
    """The requested work item does not exist."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Work item {item_id} not found")
        self.item_id = item_id


class RelationFetchError(WorkItemLinkerError):
    """Listing the relations of a work item failed."""

    def __init__(self, item_id: int, reason: str) -> None:
        super().__init__(f"Failed to fetch relations for work item {item_id}: {reason}")
        self.item_id = item_id


class ConfigurationError(WorkItemLinkerError, ValueError):
    """Configuration is missing, unreadable or invalid."""


class RepositoryConfigurationError(ConfigurationError):
    """Organization or project is not configured."""


class BranchError(WorkItemLinkerError):
    """A branch could not be created."""


class ActivationError(WorkItemLinkerError):
    """A work item could not be activated."""
