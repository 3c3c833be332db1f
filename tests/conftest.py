"""Shared fixtures for workitem linker tests."""

import pytest

from tests.fakes import FakeRemoteClient
from workitem_linker.cli import configure_logging
from workitem_linker.models import RepositoryRef


@pytest.fixture(autouse=True)
def quiet_logging() -> None:
    """Apply the CLI's default log level, as ``main`` does, so logs stay off stdout."""
    configure_logging("critical")


@pytest.fixture
def fake_client() -> FakeRemoteClient:
    """Create an empty fake remote client."""
    return FakeRemoteClient()


@pytest.fixture
def repository() -> RepositoryRef:
    """Create a repository reference."""
    return RepositoryRef(organization="https://dev.azure.com/contoso", project="Web", repository="web-app")
