"""Frontmatter extraction from document files.

Enumerates input documents, splits off the ``---`` delimited metadata
block, parses it with PyYAML and checks it against the schema's
per-document rules. Files are processed in a thread pool; results keep
input order, and the pool join is the barrier before any cross-document
directive runs.
"""

import glob
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field

from frontweave.errors import DataValidationError, DocumentError, FrontweaveError
from frontweave.schema.schemas import Schema, ValidationRules
from frontweave.settings import DEFAULT_MAX_WORKERS

from .store import FrontmatterContent

logger = logging.getLogger(__name__)

DELIMITER = "---"
CLOSING_DELIMITERS = ("---", "...")
DOCUMENT_SUFFIXES = (".md", ".markdown", ".mdx")

# JSON Schema type name -> accepted python types
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
    "null": (type(None),),
}


class ExtractionOptions(BaseModel):
    """Options for transform_documents."""

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    skip_invalid: bool = Field(
        default=False,
        description="Log and drop documents that fail parsing/validation instead of failing",
    )
    encoding: str = Field(default="utf-8")
    base_dir: Optional[str] = Field(
        default=None, description="Directory relative patterns are resolved against"
    )


# ── Enumeration ──────────────────────────────────────


def find_documents(
    input_pattern: Union[str, list[str]],
    base_dir: Optional[str] = None,
) -> list[Path]:
    """Expand glob patterns, directories and plain files into sorted paths."""
    patterns = [input_pattern] if isinstance(input_pattern, str) else list(input_pattern)
    root = Path(base_dir) if base_dir else None
    found: dict[str, Path] = {}

    for pattern in patterns:
        candidate = Path(pattern)
        if root is not None and not candidate.is_absolute():
            candidate = root / candidate

        if candidate.is_dir():
            matches = [
                p for p in candidate.rglob("*")
                if p.is_file() and p.suffix.lower() in DOCUMENT_SUFFIXES
            ]
        elif candidate.is_file():
            matches = [candidate]
        else:
            matches = [Path(p) for p in glob.glob(str(candidate), recursive=True)]
            matches = [p for p in matches if p.is_file()]

        for match in matches:
            found.setdefault(str(match.resolve()), match)

    paths = sorted(found.values(), key=lambda p: str(p))
    logger.debug(f"Input pattern {input_pattern!r} matched {len(paths)} documents")
    return paths


# ── Parsing ──────────────────────────────────────────


def split_frontmatter(text: str) -> tuple[Optional[str], str]:
    """Return (metadata block or None, body)."""
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != DELIMITER:
        return None, text

    for index in range(1, len(lines)):
        if lines[index].rstrip() in CLOSING_DELIMITERS:
            return "".join(lines[1:index]), "".join(lines[index + 1:])
    return None, text


def _normalize(value: Any) -> Any:
    """YAML dates become ISO strings so the tree stays JSON-serializable."""
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def parse_frontmatter(text: str, source: Optional[str] = None) -> Optional[FrontmatterContent]:
    """Parse a document's metadata block; None when the document has none.

    Raises:
        DocumentError: FrontmatterParseFailed
    """
    block, _ = split_frontmatter(text)
    if block is None:
        return None
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise DocumentError(
            f"Invalid frontmatter YAML in {source or '<text>'}: {e}",
            "FrontmatterParseFailed",
            source=source,
        ) from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DocumentError(
            f"Frontmatter in {source or '<text>'} must be a mapping, got {type(data).__name__}",
            "FrontmatterParseFailed",
            source=source,
        )
    return FrontmatterContent(_normalize(data), source=source)


# ── Validation ───────────────────────────────────────


def _matches_type(value: Any, declared: str) -> bool:
    accepted = _JSON_TYPES.get(declared)
    if accepted is None:
        return True
    if isinstance(value, bool) and bool not in accepted:
        return False
    return isinstance(value, accepted)


def validate_frontmatter(content: FrontmatterContent, rules: ValidationRules) -> None:
    """Raises DataValidationError (MissingRequired / InvalidType)."""
    for name in rules.required:
        if name not in content:
            raise DataValidationError(
                f"Required field '{name}' missing in {content.source or 'document'}",
                "MissingRequired",
                field=name,
                source=content.source,
            )
    for name, declared in rules.types.items():
        if name not in content:
            continue
        value = content.get(name)
        if not any(_matches_type(value, t) for t in declared):
            raise DataValidationError(
                f"Field '{name}' in {content.source or 'document'} should be "
                f"{' or '.join(declared)}, got {type(value).__name__}",
                "InvalidType",
                field=name,
                expected=declared,
                actual=type(value).__name__,
                source=content.source,
            )


# ── Extraction ───────────────────────────────────────


def extract_document(
    path: Path,
    rules: ValidationRules,
    encoding: str = "utf-8",
) -> Optional[FrontmatterContent]:
    """Read, parse and validate one document."""
    try:
        text = path.read_text(encoding=encoding)
    except OSError as e:
        raise DocumentError(
            f"Could not read document {path}: {e}", "DocumentNotFound", source=str(path)
        ) from e
    except UnicodeDecodeError as e:
        raise DocumentError(
            f"Document {path} is not valid {encoding}: {e}",
            "FrontmatterParseFailed",
            source=str(path),
            encoding=encoding,
        ) from e

    content = parse_frontmatter(text, source=str(path))
    if content is None:
        logger.debug(f"No frontmatter in {path}; skipping")
        return None
    validate_frontmatter(content, rules)
    return content


def transform_documents(
    input_pattern: Union[str, list[str]],
    validation_rules: Optional[ValidationRules] = None,
    schema: Optional[Schema] = None,
    options: Optional[ExtractionOptions] = None,
) -> list[FrontmatterContent]:
    """Extract every matching document's frontmatter, in input order.

    Raises:
        DocumentError / DataValidationError: the first failing document (in
            input order) unless ``options.skip_invalid`` is set
    """
    options = options or ExtractionOptions()
    rules = validation_rules
    if rules is None:
        rules = schema.validation_rules() if schema is not None else ValidationRules()

    start_time = time.time()
    paths = find_documents(input_pattern, options.base_dir)
    results: list[Optional[FrontmatterContent]] = [None] * len(paths)
    failures: dict[int, FrontweaveError] = {}

    if len(paths) <= 1 or options.max_workers == 1:
        for index, path in enumerate(paths):
            try:
                results[index] = extract_document(path, rules, options.encoding)
            except FrontweaveError as e:
                failures[index] = e
    else:
        with ThreadPoolExecutor(max_workers=options.max_workers) as executor:
            futures = {
                executor.submit(extract_document, path, rules, options.encoding): index
                for index, path in enumerate(paths)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except FrontweaveError as e:
                    failures[index] = e

    if failures:
        if not options.skip_invalid:
            first = failures[min(failures)]
            logger.error(f"Frontmatter extraction failed for {len(failures)} documents: {first.message}")
            raise first
        for index in sorted(failures):
            logger.warning(f"Skipping {paths[index]}: {failures[index].message}")

    documents = [r for r in results if r is not None]
    elapsed = int((time.time() - start_time) * 1000)
    logger.info(
        f"Extracted frontmatter from {len(documents)}/{len(paths)} documents in {elapsed}ms"
    )
    return documents
