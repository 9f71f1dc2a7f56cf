"""Token streams, control-flow and symbol links, mark queries, scripts and sessions for C-like code."""

__version__ = "0.1.0"

__all__ = ["links", "marksets", "query", "scripts", "session", "symbols", "tokens"]