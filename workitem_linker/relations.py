"""Relation graph resolution for work items."""

import asyncio
from collections.abc import Iterable

import structlog

from workitem_linker.client import RemoteClient
from workitem_linker.errors import RelationFetchError, TransportError, WorkItemNotFoundError
from workitem_linker.lookup import WorkItemLookup
from workitem_linker.models import (
    AncestorChain,
    RelationEdge,
    RelationGraph,
    RelationKind,
    WorkItemIdentity,
    WorkItemRecord,
)

logger = structlog.get_logger()

DEFAULT_FAN_OUT_LIMIT = 25
DEFAULT_MAX_DEPTH = 5

# Checked in order; "related" would also match custom link types containing it.
_CLASSIFIERS: tuple[tuple[str, RelationKind], ...] = (
    ("hierarchy-reverse", RelationKind.PARENT),
    ("hierarchy-forward", RelationKind.CHILD),
    ("related", RelationKind.RELATED),
)


def classify_relation(rel: str) -> RelationKind | None:
    """Classify a link type string, or return None for link types we ignore."""
    lower = rel.lower()
    for needle, kind in _CLASSIFIERS:
        if needle in lower:
            return kind
    return None


def edges_from(record: WorkItemRecord) -> list[RelationEdge]:
    """Classify the relation records of a work item, keeping their order."""
    edges = []
    for relation in record.relations:
        kind = classify_relation(relation.rel)
        if kind is None or relation.target_id is None:
            continue
        edges.append(RelationEdge(kind=kind, target_id=relation.target_id))
    return edges


def _first_parent_edge(record: WorkItemRecord) -> RelationEdge | None:
    return next((edge for edge in edges_from(record) if edge.kind is RelationKind.PARENT), None)


class RelationGraphResolver:
    """Assembles parent, siblings, children and related items of a work item.

    Args:
        client: Remote client used for every lookup
        fan_out_limit: Maximum number of items fetched per collection
    """

    def __init__(self, client: RemoteClient, fan_out_limit: int = DEFAULT_FAN_OUT_LIMIT) -> None:
        if fan_out_limit < 1:
            raise ValueError(f"fan_out_limit must be positive, got {fan_out_limit}")
        self.client = client
        self.fan_out_limit = fan_out_limit

    async def resolve(self, item_id: int, ancestor_depth: int = 0) -> RelationGraph:
        """Resolve the relation graph around a work item.

        Args:
            item_id: Work item ID
            ancestor_depth: Number of parent links to follow into ``graph.ancestors``;
                0 skips the walk. The parent record fetched for siblings is reused.

        Raises:
            WorkItemNotFoundError: The work item does not exist
            RelationFetchError: The relations of the item or of its parent could not be listed
        """
        logger.info("Resolving relation graph", item_id=item_id)
        record = await self._fetch_with_relations(item_id)
        lookup = WorkItemLookup(self.client)
        lookup.prime(record.identity)

        edges = edges_from(record)
        warnings: list[str] = []
        excluded = {item_id}

        parent_record: WorkItemRecord | None = None
        sibling_ids: list[int] = []
        parent_edge = _first_parent_edge(record)
        if parent_edge is not None and parent_edge.target_id == item_id:
            logger.warning("Work item lists itself as parent", item_id=item_id)
            warnings.append(f"Work item {item_id} lists itself as its parent; ignored")
        elif parent_edge is not None:
            try:
                parent_record = await self._fetch_with_relations(parent_edge.target_id)
            except WorkItemNotFoundError as e:
                logger.warning("Parent work item not found", item_id=item_id, parent_id=parent_edge.target_id)
                warnings.append(str(e))
            else:
                lookup.prime(parent_record.identity)
                excluded.add(parent_record.identity.id)
                sibling_ids = self._select(edges_from(parent_record), RelationKind.CHILD, excluded, "siblings", warnings)

        child_ids = self._select(edges, RelationKind.CHILD, excluded, "children", warnings)
        related_ids = self._select(edges, RelationKind.RELATED, {item_id}, "related items", warnings)

        (siblings, sibling_warnings), (children, child_warnings), (related, related_warnings) = await asyncio.gather(
            lookup.get_many(sibling_ids),
            lookup.get_many(child_ids),
            lookup.get_many(related_ids),
        )
        warnings.extend(sibling_warnings + child_warnings + related_warnings)

        ancestors: tuple[WorkItemIdentity, ...] = ()
        if parent_record is not None and ancestor_depth > 0:
            climbed = await self._climb(parent_record, {item_id, parent_record.identity.id}, ancestor_depth - 1)
            ancestors = (parent_record.identity,) + climbed.items
            warnings.extend(climbed.warnings)

        parent = parent_record.identity if parent_record else None
        graph = RelationGraph(
            item=record.identity,
            parent=parent,
            siblings=tuple(siblings),
            children=tuple(children),
            related=tuple(related),
            ancestors=ancestors,
            warnings=tuple(warnings),
        )
        logger.info(
            "Relation graph resolved",
            item_id=item_id,
            parent_id=parent.id if parent else None,
            siblings_count=len(graph.siblings),
            children_count=len(graph.children),
            related_count=len(graph.related),
            ancestors_count=len(graph.ancestors),
            warnings_count=len(graph.warnings),
        )
        return graph

    async def ancestors(self, item_id: int, max_depth: int = DEFAULT_MAX_DEPTH) -> AncestorChain:
        """Walk parent links upwards, nearest ancestor first.

        The walk stops at the root, after ``max_depth`` hops, at a parent that
        no longer exists, or when a parent link leads back to an item already
        visited. The last two leave a warning on the returned chain.

        Raises:
            WorkItemNotFoundError: The starting work item does not exist
            RelationFetchError: Relations along the chain could not be listed
        """
        logger.debug("Walking ancestors", item_id=item_id, max_depth=max_depth)
        record = await self._fetch_with_relations(item_id)
        return await self._climb(record, {item_id}, max_depth)

    async def _climb(self, record: WorkItemRecord, visited: set[int], hops: int) -> AncestorChain:
        """Follow parent links above ``record``; ``visited`` ids end the walk."""
        chain: list[WorkItemIdentity] = []
        warnings: list[str] = []
        for _ in range(hops):
            parent_edge = _first_parent_edge(record)
            if parent_edge is None:
                break
            if parent_edge.target_id in visited:
                logger.warning("Cycle in parent links", item_id=record.identity.id, repeated_id=parent_edge.target_id)
                warnings.append(
                    f"Parent links of work item {record.identity.id} lead back to {parent_edge.target_id}; stopped"
                )
                break
            visited.add(parent_edge.target_id)
            try:
                record = await self._fetch_with_relations(parent_edge.target_id)
            except WorkItemNotFoundError as e:
                logger.warning("Ancestor work item not found", item_id=parent_edge.target_id)
                warnings.append(str(e))
                break
            chain.append(record.identity)
        return AncestorChain(items=tuple(chain), warnings=tuple(warnings))

    async def _fetch_with_relations(self, item_id: int) -> WorkItemRecord:
        try:
            return await self.client.get_item(item_id, expand_relations=True)
        except WorkItemNotFoundError:
            raise
        except TransportError as e:
            logger.error("Failed to fetch work item relations", item_id=item_id, error=str(e))
            raise RelationFetchError(item_id, str(e)) from e

    def _select(
        self,
        edges: Iterable[RelationEdge],
        kind: RelationKind,
        excluded: set[int],
        label: str,
        warnings: list[str],
    ) -> list[int]:
        """Pick target ids of one kind in discovery order, without repeats, capped at the fan-out limit."""
        ids: list[int] = []
        seen: set[int] = set()
        for edge in edges:
            if edge.kind is not kind or edge.target_id in excluded or edge.target_id in seen:
                continue
            seen.add(edge.target_id)
            ids.append(edge.target_id)

        if len(ids) > self.fan_out_limit:
            logger.debug("Capping related lookups", label=label, total=len(ids), limit=self.fan_out_limit)
            warnings.append(f"Showing the first {self.fan_out_limit} of {len(ids)} {label}")
            ids = ids[: self.fan_out_limit]
        return ids
