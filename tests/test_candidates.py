from packages.domain.classification.candidates import build_candidates


def test_full_block_in_catalog_order(catalog):
    block = build_candidates(catalog)

    lines = block.full.split("\n")
    assert lines == [entry.formatted for entry in catalog]
    assert lines[0] == "010221 - Sapi hidup, bibit ternak murni"
    assert block.priority is None
    assert not block.has_priority


def test_priority_block_follows_priority_order(catalog):
    block = build_candidates(catalog, ["902511", "999999", "847130"])

    assert block.priority.split("\n") == [
        "902511 - Termometer berisi cairan, untuk pembacaan langsung",
        "847130 - Mesin pengolah data otomatis portabel, beratnya tidak melebihi 10 kg",
    ]
    # Ordering only: the full list is still offered
    assert block.full == build_candidates(catalog).full
    assert block.has_priority


def test_priority_codes_absent_from_catalog_are_skipped(catalog):
    block = build_candidates(catalog, ["999999", "123456"])

    assert block.priority == ""
    assert not block.has_priority
    assert len(block.full.split("\n")) == len(catalog)
