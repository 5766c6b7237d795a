"""Environment-driven defaults.

Read once at import time; explicit arguments always win.
"""

import os

# Worker threads for per-document frontmatter extraction
DEFAULT_MAX_WORKERS = int(os.environ.get("FRONTWEAVE_MAX_WORKERS", "4"))

# Whole-run budget checked between pipeline commands (ms)
DEFAULT_MAX_DURATION_MS = int(os.environ.get("FRONTWEAVE_MAX_DURATION_MS", "300000"))

LOG_LEVEL = os.environ.get("FRONTWEAVE_LOG_LEVEL", "INFO").upper()

SUPPORTED_OUTPUT_FORMATS = ("json", "yaml", "xml", "markdown")
DEFAULT_OUTPUT_FORMAT = "json"

# Ordering strategy used when none is requested explicitly
DEFAULT_ORDERING_STRATEGY = os.environ.get("FRONTWEAVE_DIRECTIVE_ORDER", "canonical")
