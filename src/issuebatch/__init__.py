"""
issuebatch: Bulk hierarchical issue creation with resumable retry.

Creates parent/child item hierarchies in an issue tracker level by level
and records every run in a durable manifest, so a retry resubmits only
the rows that failed.
"""

__version__ = "0.1.0"
