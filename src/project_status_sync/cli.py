"""Console entrypoint shim.

The CLI is implemented in `project_status_sync.sync.main`.
"""

from __future__ import annotations

from project_status_sync.sync.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
