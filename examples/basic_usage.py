#!/usr/bin/env python3
"""Programmatic drift check example.

This demonstrates using the sync components directly:

* load settings from `.env`
* list a repository's issues with their board Status
* print the issues whose OPEN/CLOSED state disagrees with the board

Nothing is changed on GitHub. Use `status-sync check --fix` to repair drift.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from project_status_sync.sync.config import SyncSettings
from project_status_sync.sync.drift import Severity, classify_inconsistencies
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.logging import configure_logging
from project_status_sync.sync.models import IssueState


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List status drift (programmatic example).")
    parser.add_argument("--repo", required=True, help='Target repository in the form "owner/repo"')
    parser.add_argument("--limit", type=int, default=50, help="Maximum issues to inspect")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    owner, _, repo = args.repo.partition("/")

    settings = SyncSettings()
    configure_logging(settings.log_level)

    client = ProjectsClient(token=settings.github_token, base_url=settings.github_base_url)
    try:
        listed = client.list_issues(
            owner=owner,
            repo=repo,
            states=(IssueState.OPEN, IssueState.CLOSED),
            limit=args.limit,
        )
        if not listed.ok or listed.value is None:
            print(f"Could not list issues: {listed.error}")
            return 1

        findings = classify_inconsistencies(listed.value)
    finally:
        client.close()

    for finding in findings:
        marker = "!!" if finding.severity is Severity.ERROR else "--"
        print(f"{marker} #{finding.number} {finding.title}: {finding.description}")
    print(f"Checked {len(listed.value)} issue(s), {len(findings)} finding(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
