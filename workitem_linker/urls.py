"""URL construction for Azure DevOps work items, pull requests and branches."""

from urllib.parse import quote


def ensure_https_protocol(url: str) -> str:
    """Prefix an organization URL with ``https://`` unless it already has a scheme."""
    if not url or url.startswith(("http://", "https://")):
        return url
    return f"https://{url}"


def _base(organization: str, project: str) -> str:
    return f"{ensure_https_protocol(organization).rstrip('/')}/{quote(project, safe='')}"


def build_work_item_url(organization: str, project: str, item_id: int | str) -> str:
    """Build the web URL of a work item."""
    return f"{_base(organization, project)}/_workitems/edit/{item_id}"


def build_pull_request_url(organization: str, project: str, repository: str, request_id: int | str) -> str:
    """Build the web URL of a pull request."""
    return f"{_base(organization, project)}/_git/{quote(repository, safe='')}/pullrequest/{request_id}"


def build_branch_url(organization: str, project: str, repository: str, branch: str) -> str:
    """Build the web URL of a branch."""
    return f"{_base(organization, project)}/_git/{quote(repository, safe='')}?version=GB{quote(branch, safe='')}"
