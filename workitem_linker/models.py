"""Data models for workitem linker."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class WorkItemIdentity:
    """Lite details of a work item: the snapshot used for relation display."""

    id: int
    title: str
    type: str = ""
    state: str = ""
    project: str = ""
    description: str | None = None


@dataclass(frozen=True)
class RawRelation:
    """A relation record as reported by the remote service."""

    rel: str
    target_id: int | None = None


@dataclass(frozen=True)
class WorkItemRecord:
    """A work item with its (optionally expanded) relation records."""

    identity: WorkItemIdentity
    relations: tuple[RawRelation, ...] = ()


class RelationKind(Enum):
    """Classification of a relation record."""

    PARENT = "parent"
    CHILD = "child"
    RELATED = "related"


@dataclass(frozen=True)
class RelationEdge:
    """A classified relation pointing at another work item."""

    kind: RelationKind
    target_id: int


@dataclass(frozen=True)
class RelationGraph:
    """Parent, siblings, children and related items around one work item.

    ``ancestors`` is filled only when the walk up the parent chain was asked
    for; it starts with the parent.
    """

    item: WorkItemIdentity | None = None
    parent: WorkItemIdentity | None = None
    siblings: tuple[WorkItemIdentity, ...] = ()
    children: tuple[WorkItemIdentity, ...] = ()
    related: tuple[WorkItemIdentity, ...] = ()
    ancestors: tuple[WorkItemIdentity, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.parent is None and not (self.siblings or self.children or self.related)


@dataclass(frozen=True)
class BranchCandidate:
    """A branch name considered a plausible match for a work item."""

    name: str
    canonical: bool = False


@dataclass(frozen=True)
class PullRequestMatch:
    """An active pull request opened from a candidate branch."""

    request_id: int
    title: str
    project: str
    source_branch: str


@dataclass(frozen=True)
class RepositoryRef:
    """Identifies a repository within an organization and project."""

    organization: str
    project: str
    repository: str

    @property
    def key(self) -> str:
        return f"{self.organization}/{self.project}/{self.repository}"


@dataclass(frozen=True)
class CandidateSet:
    """Candidate branches for a work item, with non-fatal warnings."""

    candidates: tuple[BranchCandidate, ...]
    warnings: tuple[str, ...] = ()

    @property
    def names(self) -> list[str]:
        return [candidate.name for candidate in self.candidates]


@dataclass(frozen=True)
class ReviewRequestSearch:
    """Outcome of scanning candidate branches for an active pull request."""

    match: PullRequestMatch | None
    checked: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class BranchCreation:
    """Outcome of ensuring the canonical branch exists."""

    name: str
    created: bool
    source_branch: str | None = None
    object_id: str | None = None
    existing: tuple[str, ...] = ()


@dataclass(frozen=True)
class AncestorChain:
    """Parent links walked upwards from a work item, nearest first."""

    items: tuple[WorkItemIdentity, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReviewRequestCreation:
    """Outcome of opening a pull request for a work item."""

    match: PullRequestMatch
    target_branch: str
    linked: bool = False
    warnings: tuple[str, ...] = ()
