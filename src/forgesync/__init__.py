"""forgesync - reconcile issues, pull requests and commit statuses on Gitea.

High-level public API:

    from forgesync import GiteaPlatform, ensure_issue

    platform = GiteaPlatform()
    await platform.init_platform("https://gitea.example.com/api/v1/", token)
    session = await platform.init_repo("owner/repo")
    await ensure_issue(session, "Dependency Dashboard", None, body)

Every reconciliation operation takes the ``RepoSession`` returned by
``init_repo`` as its first argument.
"""

from __future__ import annotations

from .branch_status import get_branch_status, get_branch_status_check, set_branch_status
from .comments import CommentRemoval, ensure_comment, ensure_comment_removal
from .config import ConfigError, ForgeConfig, load_config
from .errors import (
    AuthenticationFailure,
    ForgeSyncError,
    NoMergeMethodAvailable,
    RemoteAPIError,
    RepositoryAccessForbidden,
    RepositoryArchived,
    RepositoryChanged,
    RepositoryEmpty,
    RepositoryMirrored,
    RepositoryUnusable,
)
from .gitea_rest import GiteaRestClient
from .git_storage import GitStorage, LocalGitStorage
from .issues import (
    add_assignees,
    delete_label,
    ensure_issue,
    ensure_issue_closing,
    find_issue,
    get_issue,
    get_issue_list,
)
from .markdown import massage_markdown
from .models import (
    BranchStatus,
    EnsureIssueResult,
    Issue,
    IssueState,
    MergeMethod,
    Outcome,
    PlatformResult,
    Pr,
    PrState,
)
from .platform import GiteaPlatform
from .pull_requests import (
    add_reviewers,
    create_pr,
    find_pr,
    get_branch_pr,
    get_pr,
    get_pr_list,
    merge_pr,
    update_pr,
)
from .session import RepoSession

# Version constant (sync manually with pyproject)
__version__ = "0.3.0"

__all__ = [
    "AuthenticationFailure",
    "BranchStatus",
    "CommentRemoval",
    "ConfigError",
    "EnsureIssueResult",
    "ForgeConfig",
    "ForgeSyncError",
    "GitStorage",
    "GiteaPlatform",
    "GiteaRestClient",
    "Issue",
    "IssueState",
    "LocalGitStorage",
    "MergeMethod",
    "NoMergeMethodAvailable",
    "Outcome",
    "PlatformResult",
    "Pr",
    "PrState",
    "RemoteAPIError",
    "RepoSession",
    "RepositoryAccessForbidden",
    "RepositoryArchived",
    "RepositoryChanged",
    "RepositoryEmpty",
    "RepositoryMirrored",
    "RepositoryUnusable",
    "add_assignees",
    "add_reviewers",
    "create_pr",
    "delete_label",
    "ensure_comment",
    "ensure_comment_removal",
    "ensure_issue",
    "ensure_issue_closing",
    "find_issue",
    "find_pr",
    "get_branch_pr",
    "get_branch_status",
    "get_branch_status_check",
    "get_issue",
    "get_issue_list",
    "get_pr",
    "get_pr_list",
    "load_config",
    "massage_markdown",
    "merge_pr",
    "set_branch_status",
    "update_pr",
    "__version__",
]
