"""CLI entrypoint for the status sync engine.

Keeps issue OPEN/CLOSED state and the project board Status field consistent.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from project_status_sync import __version__
from project_status_sync.sync.check import run_check
from project_status_sync.sync.config import SyncSettings
from project_status_sync.sync.fields import set_item_fields
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.locator import resolve_project_item
from project_status_sync.sync.logging import configure_logging
from project_status_sync.sync.models import UpdateReason
from project_status_sync.sync.status_update import remediation_hint, resolve_and_update_status
from project_status_sync.sync.workflow import ProjectStatus

logger = logging.getLogger(__name__)


def _split_repository(value: str) -> tuple[str, str]:
    owner, sep, name = value.strip().strip("/").partition("/")
    if not sep or not owner or not name or "/" in name:
        raise argparse.ArgumentTypeError("repository must be in the form 'owner/repo'")
    return owner, name


def _parse_field_pairs(values: list[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Invalid --field '{raw}' (expected Name=Value)")
        fields[name.strip()] = value.strip()
    return fields


def _add_target_args(parser: argparse.ArgumentParser, *, issue: bool = True) -> None:
    parser.add_argument(
        "--repo",
        "--repository",
        dest="repository",
        type=_split_repository,
        required=True,
        help="Target repository in the form 'owner/repo'",
    )
    parser.add_argument(
        "--project",
        default=None,
        help="Project title (defaults to STATUS_SYNC_PROJECT_NAME, then the repository name)",
    )
    if issue:
        parser.add_argument("--issue-number", type=int, required=True, help="Issue number")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="status-sync",
        description="Keep GitHub issue state and project board Status consistent",
    )
    parser.add_argument(
        "--version", action="version", version=f"project-status-sync {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser(
        "check", help="Report drift between issue state and project Status (JSON)"
    )
    _add_target_args(check, issue=False)
    check.add_argument(
        "--fix",
        action="store_true",
        help="Apply one fix per error finding (close issue, set Status to Done, backfill dates)",
    )
    check.add_argument(
        "--no-metrics",
        action="store_true",
        help="Skip the lifecycle timestamp checks even when metrics are enabled",
    )

    set_status = subparsers.add_parser("set-status", help="Set the Status of an issue's item")
    _add_target_args(set_status)
    set_status.add_argument("--status", required=True, help="Status option name, e.g. 'Review'")

    set_fields = subparsers.add_parser(
        "set-fields", help="Set one or more single-select or text fields on an issue's item"
    )
    _add_target_args(set_fields)
    set_fields.add_argument(
        "--field",
        dest="fields",
        action="append",
        required=True,
        help="Field assignment Name=Value; repeat for several fields",
    )

    close = subparsers.add_parser("close", help="Close an issue and move its Status to Done")
    _add_target_args(close)
    close.add_argument(
        "--not-planned",
        action="store_true",
        help="Close as not planned (Status defaults to 'Not Planned')",
    )
    close.add_argument("--status", default=None, help="Status to set instead of the default")

    reopen = subparsers.add_parser("reopen", help="Reopen an issue and move its Status back")
    _add_target_args(reopen)
    reopen.add_argument(
        "--status",
        default=ProjectStatus.IN_PROGRESS.value,
        help="Status to set after reopening (default: 'In Progress')",
    )

    fields = subparsers.add_parser(
        "fields",
        help="List the single-select and text fields of the project holding an issue",
    )
    _add_target_args(fields)

    return parser


def _print_hint(
    reason: UpdateReason,
    args: argparse.Namespace,
    project_name: str | None,
    *,
    error: str | None = None,
) -> None:
    owner, repo = args.repository
    if error:
        print(f"GitHub error: {error}", file=sys.stderr)
    print(
        remediation_hint(
            reason,
            owner=owner,
            repo=repo,
            issue_number=args.issue_number,
            project_name=project_name,
        ),
        file=sys.stderr,
    )


def _set_status(
    client: ProjectsClient,
    settings: SyncSettings,
    args: argparse.Namespace,
    *,
    status: str,
    project_name: str | None,
) -> bool:
    owner, repo = args.repository
    result = resolve_and_update_status(
        client,
        owner=owner,
        repo=repo,
        issue_number=args.issue_number,
        status_value=status,
        metrics=settings.metrics,
        project_name=project_name,
    )
    if result.success:
        print(f"Issue #{args.issue_number} -> {status}")
        return True

    assert result.reason is not None
    print(
        f"Issue #{args.issue_number}: Status not updated ({result.reason.value})",
        file=sys.stderr,
    )
    _print_hint(result.reason, args, project_name, error=result.error)
    return False


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = SyncSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    owner, repo = args.repository
    repository = f"{owner}/{repo}"
    project_name = args.project or settings.project_name

    client = ProjectsClient(token=settings.github_token, base_url=settings.github_base_url)
    try:
        if args.command == "check":
            report = run_check(
                client,
                owner=owner,
                repo=repo,
                settings=settings,
                fix=args.fix,
                include_metrics=not args.no_metrics,
                project_name=project_name,
            )
            print(report.model_dump_json(indent=2))
            return report.exit_code

        if args.command == "set-status":
            ok = _set_status(client, settings, args, status=args.status, project_name=project_name)
            return 0 if ok else 1

        if args.command == "set-fields":
            fields = _parse_field_pairs(args.fields)
            located = resolve_project_item(
                client,
                owner=owner,
                repo=repo,
                issue_number=args.issue_number,
                project_name=project_name,
            )
            if located.resolved is None:
                assert located.reason is not None
                _print_hint(located.reason, args, project_name, error=located.error)
                return 1

            written = set_item_fields(
                client,
                project_id=located.resolved.project_id,
                item_id=located.resolved.item_id,
                fields=fields,
                catalog=located.resolved.catalog,
                current_status=located.resolved.current_status,
                metrics=settings.metrics,
            )
            print(f"Issue #{args.issue_number}: updated {written}/{len(fields)} field(s)")
            return 0 if written == len(fields) else 1

        if args.command == "close":
            reason = "not_planned" if args.not_planned else "completed"
            closed = client.close_issue(
                repository=repository, issue_number=args.issue_number, state_reason=reason
            )
            if not closed.ok:
                print(f"Failed to close issue #{args.issue_number}: {closed.error}", file=sys.stderr)
                return 1
            print(f"Closed #{args.issue_number} ({reason})")

            default_status = ProjectStatus.NOT_PLANNED if args.not_planned else ProjectStatus.DONE
            # The issue is closed either way; a skipped Status shows up in `check`.
            _set_status(
                client,
                settings,
                args,
                status=args.status or default_status.value,
                project_name=project_name,
            )
            return 0

        if args.command == "reopen":
            reopened = client.reopen_issue(repository=repository, issue_number=args.issue_number)
            if not reopened.ok:
                print(
                    f"Failed to reopen issue #{args.issue_number}: {reopened.error}",
                    file=sys.stderr,
                )
                return 1
            print(f"Reopened #{args.issue_number}")
            _set_status(client, settings, args, status=args.status, project_name=project_name)
            return 0

        if args.command == "fields":
            located = resolve_project_item(
                client,
                owner=owner,
                repo=repo,
                issue_number=args.issue_number,
                project_name=project_name,
            )
            if located.resolved is None:
                assert located.reason is not None
                _print_hint(located.reason, args, project_name, error=located.error)
                return 1
            catalog = {
                name: {"id": d.id, "type": d.type.value, "options": sorted(d.options)}
                for name, d in sorted(located.resolved.catalog.items())
            }
            print(json.dumps(catalog, indent=2, ensure_ascii=False))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1

    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
