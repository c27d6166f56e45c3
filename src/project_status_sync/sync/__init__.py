"""Issue state and project Status consistency engine.

- Field catalog lookups and single-select/text writes
- Item location for an (owner, repo, issue number)
- Status updates with derived lifecycle dates
- Drift classification and fixes
"""
