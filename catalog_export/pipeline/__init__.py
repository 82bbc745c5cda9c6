"""Pipeline orchestration, output formatting and CLI."""
