"""Project Status Sync.

Keeps GitHub issue OPEN/CLOSED state and the Projects V2 "Status" field
consistent:
- configuration loaded from `.env`
- structured logging
- Status writes with write-once lifecycle timestamps
- drift detection and optional repair
"""

__version__ = "0.1.0"

from project_status_sync.sync.config import SyncSettings

__all__ = ["__version__", "SyncSettings"]
