"""Plain-text context for a work item and its relations, ready to paste into an AI chat."""

import html
import re

from workitem_linker.models import RelationGraph, WorkItemIdentity

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"[ \t\r\f\v]+")


def clean_description(description: str | None) -> str:
    """Strip HTML tags and entities from a work item description."""
    if not description:
        return ""
    text = html.unescape(_TAG_RE.sub(" ", description)).replace("\xa0", " ")
    return _SPACE_RE.sub(" ", text).strip()


def _line(item: WorkItemIdentity, bullet: str = "- ", indent: str = "  ") -> str:
    description = clean_description(item.description)
    line = f"{bullet}#{item.id}: {item.title}"
    return f"{line}\n{indent}{description}" if description else line


def build_context(graph: RelationGraph, item: WorkItemIdentity | None = None) -> str:
    """Render a work item with its parent, siblings, children and related items.

    Args:
        graph: Resolved relation graph
        item: Full details of the item itself; defaults to ``graph.item``
    """
    item = item or graph.item
    if item is None:
        raise ValueError("Relation graph has no work item to describe")

    context = f"#{item.id}: {item.title}"
    description = clean_description(item.description)
    if description:
        context += f"\n\nDescription:\n{description}"

    sections: list[str] = []
    if graph.parent:
        sections.append(_line(graph.parent, bullet="Parent ", indent=""))
    for label, items in (("Siblings", graph.siblings), ("Children", graph.children), ("Related", graph.related)):
        if items:
            sections.append(f"{label}:\n" + "\n".join(_line(i) for i in items))

    if sections:
        context += "\n\nThis is related information:\n" + "\n\n".join(sections)
    return context
