"""caseops: operations toolkit for a remote case record store."""

__version__ = "0.3.0"
