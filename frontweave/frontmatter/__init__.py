"""Document frontmatter.

- store.py     - FrontmatterContent, the immutable per-document tree
- extractor.py - file enumeration, block splitting, parsing, validation
"""

from .extractor import (
    ExtractionOptions,
    find_documents,
    parse_frontmatter,
    split_frontmatter,
    transform_documents,
    validate_frontmatter,
)
from .store import FrontmatterContent

__all__ = [
    "ExtractionOptions",
    "FrontmatterContent",
    "find_documents",
    "parse_frontmatter",
    "split_frontmatter",
    "transform_documents",
    "validate_frontmatter",
]
