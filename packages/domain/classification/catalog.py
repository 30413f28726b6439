"""
HS Code Catalog - the universe of valid classification outputs

Loaded once per process from a JSON array or a CSV file and read-only
afterwards. Loading is strict: a bad record, a duplicate code or an empty
file stops the process before any request is served.
"""
import csv
import json
import math
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

import structlog
from pydantic import ValidationError

from packages.domain.classification.errors import (
    DuplicateCatalogCode,
    EmptyCatalog,
    InvalidCatalogRecord,
)
from packages.domain.classification.schemas import CatalogPage, CodeEntry

logger = structlog.get_logger()

PAGE_SIZES = (10, 25, 50, 100)


class CodeCatalog:
    """
    Ordered, immutable set of CodeEntry rows.

    Usage:
        catalog = CodeCatalog.from_file("data/hs_codes.json")
        entry = catalog.get("847130")
        page = catalog.search("komputer", page=1, per_page=10)
    """

    def __init__(self, entries: Iterable[CodeEntry]):
        self._entries: List[CodeEntry] = []
        self._by_code: Dict[str, CodeEntry] = {}

        for entry in entries:
            if entry.code in self._by_code:
                raise DuplicateCatalogCode(entry.code)
            self._by_code[entry.code] = entry
            self._entries.append(entry)

        if not self._entries:
            raise EmptyCatalog("HS code catalog is empty, nothing to classify against")

        self._formatted = frozenset(entry.formatted for entry in self._entries)

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "CodeCatalog":
        """Validate raw {code, description} records and build a catalog"""
        entries = []
        for index, record in enumerate(records):
            try:
                entries.append(CodeEntry.model_validate(record))
            except ValidationError as e:
                raise InvalidCatalogRecord(
                    f"Catalog record {index} is invalid: {record!r} ({e.error_count()} errors)"
                ) from e
        return cls(entries)

    @classmethod
    def from_file(cls, path: str | Path) -> "CodeCatalog":
        """
        Load catalog from disk.

        Args:
            path: .json (array of objects) or .csv (header: code,description)

        Returns:
            CodeCatalog

        Raises:
            InvalidCatalogRecord: Unreadable file or malformed record
            DuplicateCatalogCode: Same code listed twice
            EmptyCatalog: File holds no records
        """
        path = Path(path)
        suffix = path.suffix.lower()

        try:
            if suffix == ".json":
                with path.open(encoding="utf-8") as f:
                    records = json.load(f)
                if not isinstance(records, list):
                    raise InvalidCatalogRecord(f"{path} must contain a JSON array")
            elif suffix == ".csv":
                with path.open(newline="", encoding="utf-8") as f:
                    records = list(csv.DictReader(f))
            else:
                raise InvalidCatalogRecord(f"Unsupported catalog format: {path.suffix}")
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidCatalogRecord(f"Cannot read catalog {path}: {e}") from e

        catalog = cls.from_records(records)

        logger.info("catalog_loaded",
                    path=str(path),
                    entries=len(catalog))

        return catalog

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CodeEntry]:
        return iter(self._entries)

    def __contains__(self, code: str) -> bool:
        return code in self._by_code

    def get(self, code: str) -> Optional[CodeEntry]:
        return self._by_code.get(code)

    def match_code(self, raw_code: str) -> Optional[CodeEntry]:
        """
        Catalog entry for a user-entered code such as "8471.30" or "84713000".

        Punctuation and spaces are ignored; longer national codes match on
        their 6-digit subheading.
        """
        digits = "".join(ch for ch in raw_code if ch.isdigit())
        if len(digits) < 6:
            return None
        return self._by_code.get(digits[:6])

    def contains_pairing(self, code_and_description: str) -> bool:
        """True if the string reproduces a catalog 'CODE - description' verbatim"""
        return code_and_description in self._formatted

    def search(self, term: str = "", page: int = 1, per_page: int = 10) -> CatalogPage:
        """
        Case-insensitive substring search over code and description.

        Args:
            term: Search text (empty matches everything)
            page: 1-based page number
            per_page: One of PAGE_SIZES

        Returns:
            CatalogPage (empty items when page is past the end)
        """
        if per_page not in PAGE_SIZES:
            raise ValueError(f"per_page must be one of {PAGE_SIZES}")
        if page < 1:
            raise ValueError("page must be >= 1")

        needle = term.strip().lower()
        matches = [
            entry for entry in self._entries
            if needle in entry.code.lower() or needle in entry.description.lower()
        ]

        start = (page - 1) * per_page
        return CatalogPage(
            items=matches[start:start + per_page],
            total=len(matches),
            page=page,
            per_page=per_page,
            total_pages=math.ceil(len(matches) / per_page),
        )


def load_priority_codes(path: str | Path) -> List[str]:
    """
    Load ordered priority codes.

    Accepts a JSON array of code strings or a text file with one code per line.
    Blank lines and repeats are dropped, first occurrence wins.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            codes = json.loads(raw)
            if not isinstance(codes, list):
                raise InvalidCatalogRecord(f"{path} must contain a JSON array of codes")
        else:
            codes = raw.splitlines()
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidCatalogRecord(f"Cannot read priority codes {path}: {e}") from e

    ordered: List[str] = []
    for code in codes:
        code = str(code).strip()
        if code and code not in ordered:
            ordered.append(code)

    logger.info("priority_codes_loaded", path=str(path), codes=len(ordered))
    return ordered
