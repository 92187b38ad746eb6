"""pipelint - policy linter for CI/CD pipeline definitions."""

__version__ = "0.3.0"
