"""Schema validation and (de)serialisation of the canonical bookmark document.

The canonical document is::

    {
      "schemaVersion": 1,
      "generatedAt": "<ISO 8601>",          # optional
      "bookmarks": [ { "id": "hm_...", "url": ..., "title": ..., ... } ],
      "meta": { "generator": ..., ... }      # optional
    }

Key design choices:

* **Collect everything** -- ``SchemaValidator.validate()`` never stops at
  the first problem.  Pydantic already reports every field error of a
  document in one pass; duplicate ids are checked separately over the raw
  data so they are reported even when other fields are broken.
* **Roles are invisible here** -- validation is a pure predicate over data
  and knows nothing about base/local/remote.
* **Deterministic output** -- ``serialize_document()`` emits bookmarks in
  id order with sorted tags, so identical collections serialise to
  identical bytes.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from hubmark_sync.errors import SchemaValidationError
from hubmark_sync.sync.models import SCHEMA_VERSION, Bookmark, Collection

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class Violation(BaseModel):
    """A single schema violation.

    Attributes:
        path: Location in the document, e.g. ``bookmarks[3].id``
            (``root`` for the document itself).
        message: What is wrong there.
    """

    path: str
    message: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationResult(BaseModel):
    """Outcome of validating a document."""

    valid: bool
    violations: list[Violation] = []

    model_config = {"frozen": True}

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def failed(cls, violations: list[Violation]) -> ValidationResult:
        return cls(valid=False, violations=violations)

    @property
    def messages(self) -> list[str]:
        """Violations formatted as ``"path: message"`` strings."""
        return [str(v) for v in self.violations]


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------


class BookmarkDocument(BaseModel):
    """Shape of the canonical JSON document."""

    schema_version: int = Field(
        alias="schemaVersion", ge=1, le=SCHEMA_VERSION, strict=True
    )
    generated_at: str | None = Field(default=None, alias="generatedAt")
    bookmarks: list[Bookmark]
    meta: dict[str, Any] | None = None

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "forbid",
    }


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


def _format_loc(loc: tuple[Any, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path or "root"


def _duplicate_id_violations(bookmarks: Any) -> list[Violation]:
    if not isinstance(bookmarks, list):
        return []
    first_seen: dict[str, int] = {}
    violations: list[Violation] = []
    for index, item in enumerate(bookmarks):
        if not isinstance(item, dict):
            continue
        bookmark_id = item.get("id")
        if not isinstance(bookmark_id, str):
            continue
        if bookmark_id in first_seen:
            violations.append(
                Violation(
                    path=f"bookmarks[{index}].id",
                    message=(
                        f"duplicate id '{bookmark_id}' "
                        f"(first seen at bookmarks[{first_seen[bookmark_id]}])"
                    ),
                )
            )
        else:
            first_seen[bookmark_id] = index
    return violations


class SchemaValidator:
    """Validate parsed JSON documents against the canonical schema."""

    def validate(self, document: Any) -> ValidationResult:
        """Check *document* and report every violation found.

        Checks top-level shape (``schemaVersion``, ``bookmarks``), required
        bookmark fields (``id``, ``url``, ``title``), field types, the id
        pattern, unknown properties, and duplicate ids.

        Args:
            document: The value produced by ``json.loads``.

        Returns:
            ``ValidationResult.ok()`` or ``ValidationResult.failed(...)``.
        """
        _, violations = self._check(document)
        if violations:
            return ValidationResult.failed(violations)
        return ValidationResult.ok()

    def validate_or_raise(self, document: Any) -> BookmarkDocument:
        """Validate *document* and return the typed model.

        Raises:
            SchemaValidationError: With every violation found.
        """
        parsed, violations = self._check(document)
        if violations or parsed is None:
            raise SchemaValidationError(violations)
        return parsed

    def _check(
        self, document: Any
    ) -> tuple[BookmarkDocument | None, list[Violation]]:
        violations: list[Violation] = []
        parsed: BookmarkDocument | None = None
        try:
            # Documents use the camelCase keys only; field names are for code.
            parsed = BookmarkDocument.model_validate(
                document, by_alias=True, by_name=False
            )
        except ValidationError as exc:
            violations.extend(
                Violation(path=_format_loc(err["loc"]), message=err["msg"])
                for err in exc.errors()
            )
        if isinstance(document, dict):
            violations.extend(
                _duplicate_id_violations(document.get("bookmarks"))
            )
        return parsed, violations


# ---------------------------------------------------------------------------
# Parsing / serialisation
# ---------------------------------------------------------------------------


def parse_document(
    text: str, validator: SchemaValidator | None = None
) -> Collection:
    """Parse and validate a JSON document into a ``Collection``.

    Raises:
        SchemaValidationError: If the text is not JSON or the document
            violates the schema.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaValidationError(
            [
                Violation(
                    path="root",
                    message=(
                        f"invalid JSON: {exc.msg} "
                        f"(line {exc.lineno}, column {exc.colno})"
                    ),
                )
            ]
        ) from None

    document = (validator or SchemaValidator()).validate_or_raise(data)
    return Collection.from_bookmarks(
        document.bookmarks, schema_version=document.schema_version
    )


def serialize_document(
    collection: Collection,
    generated_at: str | None = None,
    meta: dict[str, Any] | None = None,
) -> str:
    """Serialise *collection* to canonical JSON text.

    The output ends with a newline and is byte-identical for equal
    collections (and equal *generated_at*/*meta*).
    """
    document: dict[str, Any] = {"schemaVersion": collection.schema_version}
    if generated_at is not None:
        document["generatedAt"] = generated_at
    document["bookmarks"] = [b.to_document() for b in collection.values()]
    if meta is not None:
        document["meta"] = meta
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def create_empty_document(generator: str = "hubmark-sync") -> dict[str, Any]:
    """Return an empty, valid document dict."""
    return {
        "schemaVersion": SCHEMA_VERSION,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "bookmarks": [],
        "meta": {"generator": generator, "lastSync": 0},
    }
