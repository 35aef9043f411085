"""
mkdocs-apitree — C/C++ API documentation trees for MkDocs.

Scans C and C++ headers with a forgiving character-level scanner, keeps the
declarations and their comments in a sorted, mergeable documentation tree
(persisted as XML), and renders it as browsable API reference pages.
"""

__version__ = "1.0.0"
