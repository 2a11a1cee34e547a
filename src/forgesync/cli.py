"""forgesync CLI.

Subcommands:
  repos           -> list repositories the token can reconcile
  ensure-issue    -> create/update the single issue carrying a title
  close-issue     -> close every open issue with a title
  find-pr         -> show the PR for a branch (JSON)
  branch-status   -> read (or with --set, write) a branch status
  ensure-comment  -> create/update/remove a topic comment on an issue or PR

Connection settings come from ``--config`` (YAML) when present, then from
the environment (``FORGESYNC_TOKEN`` / ``GITEA_TOKEN``); ``--repo`` and
``--endpoint`` override both.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from pathlib import Path

from forgesync.branch_status import get_branch_status, get_branch_status_check, set_branch_status
from forgesync.comments import CommentRemoval, ensure_comment, ensure_comment_removal
from forgesync.config import ConfigError, ForgeConfig, load_config
from forgesync.env_auth import EnvAuthConfig, create_env_auth_manager
from forgesync.errors import (
    AuthenticationFailure,
    ForgeSyncError,
    RepositoryUnusable,
    redact,
)
from forgesync.git_storage import LocalGitStorage
from forgesync.issues import ensure_issue, ensure_issue_closing
from forgesync.logging import configure_logging, get_logger
from forgesync.models import BranchStatus, PrState
from forgesync.platform import GiteaPlatform
from forgesync.pull_requests import find_pr
from forgesync.retry import RetryConfig
from forgesync.session import RepoSession

CONFIG_DEFAULT = "forgesync.config.yaml"
REPO_HELP = "Target repository (owner/repo); overrides the config file"
EXIT_UNUSABLE = 2


@dataclass
class Settings:
    endpoint: str | None
    token: str | None
    repository: str | None
    clone_submodules: bool = False
    git_workdir: Path = Path(".forgesync/repo")
    git_clone: bool = False
    http_timeout: float = 30
    http_cache: bool = True
    retry: RetryConfig | None = None
    auth_hints: list[str] = field(default_factory=list)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="forgesync", description="Reconcile issues, PRs and statuses")
    p.add_argument("--config", default=CONFIG_DEFAULT, help="YAML config file (optional)")
    p.add_argument("--repo", help=REPO_HELP)
    p.add_argument("--endpoint", help="API endpoint, e.g. https://gitea.example.com/api/v1/")
    p.add_argument("--json-logs", action="store_true", help="Emit structured JSON log lines")
    p.add_argument("--log-level", default=None, help="Logging level (default from config or INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("repos", help="List repositories available for reconciliation")

    ei = sub.add_parser("ensure-issue", help="Create or update the issue with a title")
    ei.add_argument("--title", required=True)
    body = ei.add_mutually_exclusive_group(required=True)
    body.add_argument("--body")
    body.add_argument("--body-file", type=Path)
    ei.add_argument("--reuse-title", help="Former title to adopt when no issue has --title")
    ei.add_argument("--label", action="append", dest="labels", help="Label name (repeatable)")
    ei.add_argument("--reopen", action="store_true", help="Reopen a closed issue")
    ei.add_argument("--once", action="store_true", help="Leave closed issues alone")

    ci = sub.add_parser("close-issue", help="Close all open issues with a title")
    ci.add_argument("--title", required=True)

    fp = sub.add_parser("find-pr", help="Find the PR for a branch")
    fp.add_argument("--branch", required=True)
    fp.add_argument("--title")
    fp.add_argument("--state", default=PrState.ALL.value, help="open|closed|merged|all|!<state>")

    bs = sub.add_parser("branch-status", help="Read or set a branch status")
    bs.add_argument("--branch", required=True)
    bs.add_argument("--context", help="Single status context to read or set")
    bs.add_argument("--set", dest="set_state", choices=[s.value for s in BranchStatus])
    bs.add_argument("--description", default="")
    bs.add_argument("--url")

    ec = sub.add_parser("ensure-comment", help="Ensure a comment exists (or is removed)")
    ec.add_argument("--number", type=int, required=True)
    ec.add_argument("--topic")
    content = ec.add_mutually_exclusive_group()
    content.add_argument("--content")
    content.add_argument("--content-file", type=Path)
    ec.add_argument("--remove", action="store_true", help="Remove the matching comment instead")
    return p


def _settings_from_config(cfg: ForgeConfig) -> Settings:
    return Settings(
        endpoint=cfg.endpoint,
        token=cfg.token,
        repository=cfg.repository,
        clone_submodules=cfg.clone_submodules,
        git_workdir=cfg.git_workdir,
        git_clone=cfg.git_clone,
        http_timeout=cfg.http_timeout,
        http_cache=cfg.http_cache,
        retry=RetryConfig(attempts=cfg.retry_attempts, base_sleep=cfg.retry_base_sleep),
    )


def prepare_settings(args: argparse.Namespace) -> Settings:
    """Merge config file, environment and command line into ``Settings``."""
    cfg_path = Path(args.config)
    cfg: ForgeConfig | None = None
    if cfg_path.exists():
        cfg = load_config(cfg_path)
    elif args.config != CONFIG_DEFAULT:
        raise ConfigError(f"Configuration file not found: {cfg_path}")

    if cfg is not None:
        configure_logging(
            json_logging=args.json_logs or cfg.logging_json_enabled,
            level=args.log_level or cfg.logging_level,
        )
        settings = _settings_from_config(cfg)
        env_config = EnvAuthConfig(
            load_dotenv=cfg.env_auth_load_dotenv, dotenv_path=cfg.env_auth_dotenv_path
        )
    else:
        configure_logging(json_logging=args.json_logs, level=args.log_level or "INFO")
        settings = Settings(endpoint=None, token=None, repository=None)
        env_config = EnvAuthConfig()

    if not settings.token:
        manager = create_env_auth_manager(env_config)
        settings.token = manager.get_token()
        settings.auth_hints = manager.get_recommendations()
    if args.endpoint:
        settings.endpoint = args.endpoint
    if args.repo:
        settings.repository = args.repo
    return settings


def _build_platform(settings: Settings) -> GiteaPlatform:
    return GiteaPlatform(
        storage=LocalGitStorage(workdir=settings.git_workdir, clone=settings.git_clone),
        client_options={
            "timeout": settings.http_timeout,
            "retry": settings.retry,
            "cache_enabled": settings.http_cache,
        },
    )


def _read_text(inline: str | None, path: Path | None) -> str:
    if path is not None:
        return path.read_text(encoding="utf-8")
    return inline or ""


async def _cmd_repos(platform: GiteaPlatform, args: argparse.Namespace, settings: Settings) -> int:
    for name in await platform.get_repos():
        print(name)
    return 0


async def _open_session(platform: GiteaPlatform, settings: Settings) -> RepoSession:
    if not settings.repository:
        raise ConfigError("No repository given; use --repo or repository.name in the config")
    return await platform.init_repo(settings.repository, settings.clone_submodules)


async def _cmd_ensure_issue(
    platform: GiteaPlatform, args: argparse.Namespace, settings: Settings
) -> int:
    session = await _open_session(platform, settings)
    result = await ensure_issue(
        session,
        title=args.title,
        reuse_title=args.reuse_title,
        body=_read_text(args.body, args.body_file),
        labels=args.labels,
        should_reopen=args.reopen,
        once=args.once,
    )
    print(result.value if result else "unchanged")
    return 0


async def _cmd_close_issue(
    platform: GiteaPlatform, args: argparse.Namespace, settings: Settings
) -> int:
    session = await _open_session(platform, settings)
    await ensure_issue_closing(session, args.title)
    return 0


async def _cmd_find_pr(platform: GiteaPlatform, args: argparse.Namespace, settings: Settings) -> int:
    session = await _open_session(platform, settings)
    pr = await find_pr(session, args.branch, title=args.title, state=args.state)
    if pr is None:
        print(f"[find-pr] no pull request for branch {args.branch}", file=sys.stderr)
        return 1
    print(json.dumps(asdict(pr), indent=2))
    return 0


async def _cmd_branch_status(
    platform: GiteaPlatform, args: argparse.Namespace, settings: Settings
) -> int:
    session = await _open_session(platform, settings)
    if args.set_state:
        if not args.context:
            raise ConfigError("--set requires --context")
        outcome = await set_branch_status(
            session,
            args.branch,
            args.context,
            args.description,
            BranchStatus(args.set_state),
            args.url,
        )
        print(outcome.value)
        return 0
    if args.context:
        status = await get_branch_status_check(session, args.branch, args.context)
        print(status.value if status else "none")
        return 0
    print((await get_branch_status(session, args.branch)).value)
    return 0


async def _cmd_ensure_comment(
    platform: GiteaPlatform, args: argparse.Namespace, settings: Settings
) -> int:
    session = await _open_session(platform, settings)
    content = _read_text(args.content, args.content_file)
    if args.remove:
        removal = (
            CommentRemoval.by_topic(args.number, args.topic)
            if args.topic
            else CommentRemoval.by_content(args.number, content)
        )
        print((await ensure_comment_removal(session, removal)).value)
        return 0
    ok = await ensure_comment(session, args.number, args.topic, content)
    return 0 if ok else 1


Handler = Callable[[GiteaPlatform, argparse.Namespace, Settings], Awaitable[int]]

_HANDLERS: dict[str, Handler] = {
    "repos": _cmd_repos,
    "ensure-issue": _cmd_ensure_issue,
    "close-issue": _cmd_close_issue,
    "find-pr": _cmd_find_pr,
    "branch-status": _cmd_branch_status,
    "ensure-comment": _cmd_ensure_comment,
}


async def _dispatch(handler: Handler, args: argparse.Namespace, settings: Settings) -> int:
    platform = _build_platform(settings)
    await platform.init_platform(settings.endpoint, settings.token)
    return await handler(platform, args, settings)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = _HANDLERS.get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    settings: Settings | None = None
    try:
        settings = prepare_settings(args)
        return asyncio.run(_dispatch(handler, args, settings))
    except RepositoryUnusable as exc:
        print(f"[{args.cmd}] {exc}", file=sys.stderr)
        return EXIT_UNUSABLE
    except AuthenticationFailure as exc:
        print(f"[{args.cmd}] {exc}", file=sys.stderr)
        for hint in settings.auth_hints if settings else []:
            print(f"  - {hint}", file=sys.stderr)
        return EXIT_UNUSABLE
    except ConfigError as exc:
        print(f"[{args.cmd}] configuration error: {exc}", file=sys.stderr)
        return 1
    except ForgeSyncError as exc:
        get_logger().log_error("Command failed", command=args.cmd, error=redact(str(exc)))
        print(f"[{args.cmd}] {redact(str(exc))}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
