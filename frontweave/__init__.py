"""frontweave - frontmatter to schema-driven output.

Turns a set of documents carrying YAML frontmatter into a single
schema-validated, template-rendered output file:
- Path resolution over arbitrary data trees
- Schema directives (x-*) that aggregate, derive, flatten and filter
- A staged pipeline state machine with partial results on failure
"""

__version__ = "0.1.0"
