"""GitHub GraphQL (Projects V2) and REST access."""
