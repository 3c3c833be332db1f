"""Tests for the GitHub client."""

from unittest.mock import MagicMock, Mock

import pytest
import requests
from github import Github, GithubException, UnknownObjectException
from github.Repository import Repository

from workitem_linker.branches import BranchMatcher
from workitem_linker.clients.github import GitHubClient
from workitem_linker.errors import TransportError, WorkItemNotFoundError
from workitem_linker.lookup import DefaultBranchCache, WorkItemLookup
from workitem_linker.models import RelationKind, RepositoryRef
from workitem_linker.relations import edges_from

REPO = RepositoryRef(organization="https://github.com", project="test_owner", repository="test_repo")


@pytest.fixture
def mock_github_client() -> Mock:
    """Create a mock PyGithub client."""
    client = MagicMock(spec=Github)
    client._Github__requester = MagicMock()
    return client


@pytest.fixture
def mock_repository() -> Mock:
    """Create a mock repository."""
    return MagicMock(spec=Repository)


@pytest.fixture
def github_client(mock_github_client: Mock, mock_repository: Mock, monkeypatch: pytest.MonkeyPatch) -> GitHubClient:
    """Create a GitHub client with mocked PyGithub."""
    mock_github_client.get_repo.return_value = mock_repository

    with monkeypatch.context() as m:
        m.setattr("workitem_linker.clients.github.Github", lambda auth: mock_github_client)
        client = GitHubClient(owner="test_owner", repo="test_repo", token="fake_token")

    return client


def make_issue(number: int, title: str = "Issue", state: str = "OPEN", pull_request=None) -> Mock:
    issue = MagicMock()
    issue.number = number
    issue.title = title
    issue.state = state
    issue.body = "Body"
    issue.pull_request = pull_request
    return issue


def test_token_required() -> None:
    """Test that a token is required."""
    with pytest.raises(ValueError, match="token"):
        GitHubClient(owner="o", repo="r", token=None)


@pytest.mark.asyncio
async def test_get_item_without_relations(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test reading an issue as a work item."""
    mock_repository.get_issue.return_value = make_issue(5, "Login page")

    record = await github_client.get_item(5)

    assert record.identity.id == 5
    assert record.identity.title == "Login page"
    assert record.identity.state == "open"
    assert record.identity.type == "Issue"
    assert record.identity.project == "test_owner/test_repo"
    assert record.relations == ()
    github_client.client._Github__requester.requestJsonAndCheck.assert_not_called()


@pytest.mark.asyncio
async def test_get_item_with_relations(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test mapping sub-issues, parent and dependencies to relations."""
    mock_repository.get_issue.return_value = make_issue(5)
    requester = github_client.client._Github__requester

    def mock_api_call(method: str, url: str, parameters=None):
        if url.endswith("/parent"):
            return ({}, {"number": 1})
        elif url.endswith("/sub_issues"):
            return ({}, [{"number": 6}, {"number": 7}])
        elif url.endswith("/blocked_by"):
            return ({}, [{"number": 8}])
        elif url.endswith("/blocking"):
            return ({}, [{"number": 9}])
        return ({}, [])

    requester.requestJsonAndCheck.side_effect = mock_api_call

    record = await github_client.get_item(5, expand_relations=True)
    edges = edges_from(record)

    assert [(edge.kind, edge.target_id) for edge in edges] == [
        (RelationKind.PARENT, 1),
        (RelationKind.CHILD, 6),
        (RelationKind.CHILD, 7),
        (RelationKind.RELATED, 8),
        (RelationKind.RELATED, 9),
    ]


@pytest.mark.asyncio
async def test_missing_parent_endpoint_is_no_parent(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that a 404 on a relation endpoint means no relation."""
    mock_repository.get_issue.return_value = make_issue(5)
    requester = github_client.client._Github__requester
    requester.requestJsonAndCheck.side_effect = UnknownObjectException(404, {"message": "Not Found"}, {})

    record = await github_client.get_item(5, expand_relations=True)

    assert record.relations == ()


@pytest.mark.asyncio
async def test_relation_endpoint_error_is_transport_error(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that other API errors surface as transport errors."""
    mock_repository.get_issue.return_value = make_issue(5)
    requester = github_client.client._Github__requester
    requester.requestJsonAndCheck.side_effect = GithubException(500, {"message": "boom"}, {})

    with pytest.raises(TransportError):
        await github_client.get_item(5, expand_relations=True)


@pytest.mark.asyncio
async def test_get_item_not_found(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that a missing issue raises not found."""
    mock_repository.get_issue.side_effect = UnknownObjectException(404, {"message": "Not Found"}, {})

    with pytest.raises(WorkItemNotFoundError):
        await github_client.get_item(404)


@pytest.mark.asyncio
async def test_pull_request_issue_type(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that pull requests read through the issues API are typed as such."""
    mock_repository.get_issue.return_value = make_issue(5, pull_request=MagicMock())
    record = await github_client.get_item(5)
    assert record.identity.type == "Pull Request"


@pytest.mark.asyncio
async def test_list_branches(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test listing branch refs."""
    mock_repository.get_git_matching_refs.return_value = [
        MagicMock(ref="refs/heads/main"),
        MagicMock(ref="refs/heads/tor/5-login"),
    ]

    assert await github_client.list_branches(REPO) == ["refs/heads/main", "refs/heads/tor/5-login"]
    mock_repository.get_git_matching_refs.assert_called_once_with("heads/")


@pytest.mark.asyncio
async def test_list_active_review_requests(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test listing open pull requests from a branch."""
    pull = MagicMock()
    pull.number = 12
    pull.title = "Login"
    pull.head.ref = "tor/5-login"
    mock_repository.get_pulls.return_value = [pull]

    matches = await github_client.list_active_review_requests(REPO, "tor/5-login")

    assert [(m.request_id, m.source_branch, m.project) for m in matches] == [(12, "tor/5-login", "test_owner")]
    mock_repository.get_pulls.assert_called_once_with(state="open", head="test_owner:tor/5-login")


@pytest.mark.asyncio
async def test_default_branch(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test reading the default branch."""
    mock_repository.default_branch = "trunk"
    assert await github_client.get_repository_default_branch(REPO) == "trunk"


@pytest.mark.asyncio
async def test_branch_head(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test reading a branch head and a missing branch."""
    ref = MagicMock()
    ref.object.sha = "abc"
    mock_repository.get_git_ref.return_value = ref
    assert await github_client.get_branch_head(REPO, "main") == "abc"

    mock_repository.get_git_ref.side_effect = UnknownObjectException(404, {"message": "Not Found"}, {})
    assert await github_client.get_branch_head(REPO, "nope") is None


@pytest.mark.asyncio
async def test_create_branch(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test creating a branch ref."""
    await github_client.create_branch(REPO, "tor/5-login", "abc")
    mock_repository.create_git_ref.assert_called_once_with(ref="refs/heads/tor/5-login", sha="abc")


@pytest.mark.asyncio
async def test_other_repository_is_fetched(github_client: GitHubClient, mock_github_client: Mock) -> None:
    """Test that a different repository reference is resolved through the client."""
    other = MagicMock(spec=Repository)
    other.default_branch = "main"
    mock_github_client.get_repo.return_value = other

    other_ref = RepositoryRef(organization="https://github.com", project="acme", repository="api")
    assert await github_client.get_repository_default_branch(other_ref) == "main"
    mock_github_client.get_repo.assert_called_with("acme/api")


@pytest.mark.asyncio
async def test_network_error_is_transport_error(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that connection failures from the HTTP layer become transport errors."""
    mock_repository.get_issue.side_effect = requests.exceptions.ConnectionError("connection reset")

    with pytest.raises(TransportError, match="connection reset"):
        await github_client.get_item(2)


@pytest.mark.asyncio
async def test_network_error_drops_one_lookup(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that a lookup hitting a network error is omitted with a warning."""

    def get_issue(number: int):
        if number == 2:
            raise requests.exceptions.ConnectionError("connection reset")
        return make_issue(number, "First")

    mock_repository.get_issue.side_effect = get_issue

    items, warnings = await WorkItemLookup(github_client).get_many([1, 2])

    assert [item.id for item in items] == [1]
    assert len(warnings) == 1
    assert "connection reset" in warnings[0]


@pytest.mark.asyncio
async def test_network_error_during_pull_request_scan(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that a timeout while listing pull requests is a warning and the scan completes."""
    mock_repository.get_git_matching_refs.side_effect = requests.exceptions.ConnectionError("refused")
    mock_repository.get_pulls.side_effect = requests.exceptions.Timeout("timeout")
    matcher = BranchMatcher(github_client, REPO, default_branches=DefaultBranchCache())

    search = await matcher.search_review_requests(1, "a")

    assert search.match is None
    assert search.checked == ("1-a",)
    assert len(search.warnings) == 2


def test_network_error_on_connect(mock_github_client: Mock, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that failing to reach the repository at startup is a transport error."""
    mock_github_client.get_repo.side_effect = requests.exceptions.ConnectionError("unreachable")
    monkeypatch.setattr("workitem_linker.clients.github.Github", lambda auth: mock_github_client)

    with pytest.raises(TransportError, match="unreachable"):
        GitHubClient(owner="test_owner", repo="test_repo", token="fake_token")


@pytest.mark.asyncio
async def test_get_current_user(github_client: GitHubClient, mock_github_client: Mock) -> None:
    """Test reading the login of the token's user."""
    mock_github_client.get_user.return_value = MagicMock(login="octocat")
    assert await github_client.get_current_user() == "octocat"

    mock_github_client.get_user.side_effect = GithubException(401, {"message": "Bad credentials"}, {})
    assert await github_client.get_current_user() is None


@pytest.mark.asyncio
async def test_update_item_state(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that activation reopens and assigns the issue."""
    issue = make_issue(5, state="closed")
    mock_repository.get_issue.return_value = issue

    await github_client.update_item_state(5, "Active", assigned_to="octocat")

    issue.edit.assert_called_once_with(state="open", assignees=["octocat"])


@pytest.mark.asyncio
async def test_update_item_state_closed(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that done-like states close the issue."""
    issue = make_issue(5)
    mock_repository.get_issue.return_value = issue

    await github_client.update_item_state(5, "Done")

    issue.edit.assert_called_once_with(state="closed")


@pytest.mark.asyncio
async def test_update_item_state_not_found(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that updating a missing issue raises not found."""
    mock_repository.get_issue.side_effect = UnknownObjectException(404, {"message": "Not Found"}, {})

    with pytest.raises(WorkItemNotFoundError):
        await github_client.update_item_state(5, "Active")


@pytest.mark.asyncio
async def test_create_review_request(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test opening a pull request."""
    pull = MagicMock()
    pull.number = 21
    pull.title = "5: Login"
    pull.head.ref = "tor/5-login"
    mock_repository.create_pull.return_value = pull

    match = await github_client.create_review_request(REPO, "tor/5-login", "main", "5: Login", "Work item #5")

    assert (match.request_id, match.source_branch, match.project) == (21, "tor/5-login", "test_owner")
    mock_repository.create_pull.assert_called_once_with(
        title="5: Login", body="Work item #5", base="main", head="tor/5-login"
    )


@pytest.mark.asyncio
async def test_link_review_request(github_client: GitHubClient, mock_repository: Mock) -> None:
    """Test that linking adds a closing keyword once."""
    pull = MagicMock()
    pull.body = "Work item #5"
    mock_repository.get_pull.return_value = pull

    await github_client.link_review_request(REPO, 21, 5)

    mock_repository.get_pull.assert_called_once_with(21)
    pull.edit.assert_called_once_with(body="Work item #5\n\nResolves #5")

    pull.edit.reset_mock()
    pull.body = "Work item #5\n\nResolves #5"
    await github_client.link_review_request(REPO, 21, 5)
    pull.edit.assert_not_called()
