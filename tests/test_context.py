"""Tests for the plain-text context block."""

import pytest

from workitem_linker.context import build_context, clean_description
from workitem_linker.models import RelationGraph, WorkItemIdentity


def test_clean_description() -> None:
    """Test stripping markup from descriptions."""
    assert clean_description("<div>Fix&nbsp;the <b>login</b> &amp; logout</div>") == "Fix the login & logout"
    assert clean_description(None) == ""
    assert clean_description("") == ""


def test_context_with_relations() -> None:
    """Test rendering an item with all relation sections."""
    graph = RelationGraph(
        item=WorkItemIdentity(id=5, title="Login", description="<p>Add a login form</p>"),
        parent=WorkItemIdentity(id=1, title="Accounts"),
        siblings=(WorkItemIdentity(id=6, title="Logout"),),
        children=(WorkItemIdentity(id=7, title="Form", description="Fields"),),
        related=(WorkItemIdentity(id=9, title="Design"),),
    )

    assert build_context(graph) == (
        "#5: Login\n"
        "\n"
        "Description:\n"
        "Add a login form\n"
        "\n"
        "This is related information:\n"
        "Parent #1: Accounts\n"
        "\n"
        "Siblings:\n"
        "- #6: Logout\n"
        "\n"
        "Children:\n"
        "- #7: Form\n"
        "  Fields\n"
        "\n"
        "Related:\n"
        "- #9: Design"
    )


def test_context_without_relations() -> None:
    """Test that an unconnected item has no related section."""
    graph = RelationGraph(item=WorkItemIdentity(id=5, title="Login"))
    assert build_context(graph) == "#5: Login"


def test_context_requires_item() -> None:
    """Test that a graph without an item cannot be rendered."""
    with pytest.raises(ValueError):
        build_context(RelationGraph())
