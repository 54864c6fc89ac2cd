"""Pluggable collaborators for the engine (payload builders)."""

from issuebatch.plugins.builders import FieldMapBuilder

__all__ = ["FieldMapBuilder"]
