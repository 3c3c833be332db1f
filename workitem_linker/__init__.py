"""Workitem Linker - connect work items with branches and pull requests."""

from workitem_linker.branches import BranchMatcher
from workitem_linker.client import RemoteClient
from workitem_linker.models import (
    BranchCandidate,
    PullRequestMatch,
    RelationEdge,
    RelationGraph,
    RelationKind,
    RepositoryRef,
    WorkItemIdentity,
)
from workitem_linker.naming import encode, matches
from workitem_linker.relations import RelationGraphResolver

__all__ = [
    "BranchCandidate",
    "BranchMatcher",
    "PullRequestMatch",
    "RelationEdge",
    "RelationGraph",
    "RelationGraphResolver",
    "RelationKind",
    "RemoteClient",
    "RepositoryRef",
    "WorkItemIdentity",
    "encode",
    "matches",
]
