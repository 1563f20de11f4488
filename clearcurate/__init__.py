"""
ClearCurate - curation and definition synthesis for harvested license metadata.

This package provides tools for:
- Parsing, normalizing and comparing license expressions
- Validating curation patches and applying them onto definitions
- Aggregating tool summaries into a single definition
- Managing curation contributions against a version-controlled store
"""

__version__ = "0.1.0"
