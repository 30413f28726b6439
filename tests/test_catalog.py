import json

import pytest

from packages.domain.classification.catalog import CodeCatalog, load_priority_codes
from packages.domain.classification.errors import (
    CatalogError,
    DuplicateCatalogCode,
    EmptyCatalog,
    InvalidCatalogRecord,
)

from tests.conftest import DATA_DIR, SAMPLE_RECORDS


def test_bundled_catalog_loads():
    catalog = CodeCatalog.from_file(DATA_DIR / "hs_codes.json")

    assert len(catalog) > 30
    assert "847130" in catalog
    assert catalog.get("902511").description.startswith("Termometer")


def test_catalog_keeps_file_order(catalog):
    assert [entry.code for entry in catalog] == [r["code"] for r in SAMPLE_RECORDS]


def test_duplicate_code_fails_to_load():
    records = SAMPLE_RECORDS + [{"code": "847130", "description": "Laptop lagi"}]

    with pytest.raises(DuplicateCatalogCode) as exc_info:
        CodeCatalog.from_records(records)

    assert exc_info.value.code == "847130"
    assert isinstance(exc_info.value, CatalogError)
    assert not isinstance(exc_info.value, EmptyCatalog)


def test_empty_catalog_fails_to_load():
    with pytest.raises(EmptyCatalog):
        CodeCatalog.from_records([])


@pytest.mark.parametrize("record", [
    {"code": "84713", "description": "Lima digit"},
    {"code": "8471300", "description": "Tujuh digit"},
    {"code": "8471AB", "description": "Bukan angka"},
    {"code": 847130, "description": "Kode numerik, bukan teks"},
    {"code": "847130", "description": "   "},
    {"code": "847130"},
])
def test_invalid_record_rejected(record):
    with pytest.raises(InvalidCatalogRecord):
        CodeCatalog.from_records([record])


def test_csv_catalog(tmp_path):
    path = tmp_path / "codes.csv"
    path.write_text(
        "code,description\n"
        "010229,\"Sapi hidup, selain bibit ternak murni\"\n"
        "847130,Mesin pengolah data otomatis portabel\n",
        encoding="utf-8",
    )

    catalog = CodeCatalog.from_file(path)

    assert len(catalog) == 2
    assert catalog.get("010229").formatted == "010229 - Sapi hidup, selain bibit ternak murni"


def test_missing_or_unsupported_file(tmp_path):
    with pytest.raises(InvalidCatalogRecord):
        CodeCatalog.from_file(tmp_path / "missing.json")

    other = tmp_path / "codes.xml"
    other.write_text("<codes/>", encoding="utf-8")
    with pytest.raises(InvalidCatalogRecord):
        CodeCatalog.from_file(other)


def test_json_catalog_must_be_array(tmp_path):
    path = tmp_path / "codes.json"
    path.write_text(json.dumps({"code": "847130", "description": "x"}), encoding="utf-8")

    with pytest.raises(InvalidCatalogRecord):
        CodeCatalog.from_file(path)


def test_contains_pairing_is_verbatim(catalog):
    assert catalog.contains_pairing("851713 - Telepon pintar")
    assert not catalog.contains_pairing("851713 - telepon pintar")
    assert not catalog.contains_pairing("851713 - Telepon")


def test_search_matches_code_and_description(catalog):
    by_description = catalog.search("SAPI")
    assert [e.code for e in by_description.items] == ["010221", "010229"]
    assert by_description.total == 2

    by_code = catalog.search("8471")
    assert [e.code for e in by_code.items] == ["847130"]


def test_search_pagination(catalog):
    everything = catalog.search("", page=1, per_page=10)
    assert everything.total == len(catalog)
    assert everything.total_pages == 1

    past_end = catalog.search("", page=3, per_page=10)
    assert past_end.items == []
    assert past_end.total == len(catalog)

    nothing = catalog.search("tidak ada barang seperti ini")
    assert nothing.total == 0
    assert nothing.total_pages == 0


def test_search_rejects_bad_paging(catalog):
    with pytest.raises(ValueError):
        catalog.search("", per_page=7)
    with pytest.raises(ValueError):
        catalog.search("", page=0)


def test_priority_codes_json_and_text(tmp_path):
    as_json = tmp_path / "priority.json"
    as_json.write_text(json.dumps(["847130", "010229", "847130"]), encoding="utf-8")
    assert load_priority_codes(as_json) == ["847130", "010229"]

    as_text = tmp_path / "priority.txt"
    as_text.write_text("902511\n\n 382200 \n", encoding="utf-8")
    assert load_priority_codes(as_text) == ["902511", "382200"]


@pytest.mark.parametrize("raw, expected", [
    ("847130", "847130"),
    ("8471.30", "847130"),
    (" 8471 30 ", "847130"),
    ("84713000", "847130"),
    ("8471", None),
    ("999999", None),
])
def test_match_code_ignores_punctuation(catalog, raw, expected):
    entry = catalog.match_code(raw)
    assert (entry.code if entry else None) == expected
