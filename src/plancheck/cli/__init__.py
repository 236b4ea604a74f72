"""plancheck command line interface."""

from plancheck.cli.main import app

__all__ = ["app"]
