import pandas as pd
import pytest

from pipeline.reconciliation.record_merger import left_join_records, merge_series_results, patch_records


@pytest.fixture
def records():
    """Four SampleRecords from the join stage, before any enrichment."""
    return pd.DataFrame({
        "REPOSITORY_ACCESSION": ["GSM_A", "GSM_B", "GSM_C", "GSM_D"],
        "SUBJECT_ACCESSION": ["SUB1", "SUB1", "SUB2", "SUB3"],
    })


@pytest.fixture
def first_series():
    return pd.DataFrame({
        "REPOSITORY_ACCESSION": ["GSM_A", "GSM_B"],
        "series_id": ["GSE1", "GSE1"],
        "R1_file": ["SRR1_1", "SRR2_1"],
    })


@pytest.fixture
def second_series():
    return pd.DataFrame({
        "REPOSITORY_ACCESSION": ["GSM_C", "GSM_D"],
        "series_id": ["GSE2", "GSE2"],
        "R1_file": ["SRR3_1", None],
    })


def test_left_join_keeps_all_records(records, first_series):
    """Unmatched records stay, with nulls in the new columns."""
    joined = left_join_records(records, first_series)

    assert list(joined["REPOSITORY_ACCESSION"]) == ["GSM_A", "GSM_B", "GSM_C", "GSM_D"]
    assert list(joined.columns) == ["REPOSITORY_ACCESSION", "SUBJECT_ACCESSION", "series_id", "R1_file"]
    assert joined.loc[0, "R1_file"] == "SRR1_1"
    assert joined[["series_id", "R1_file"]].iloc[2:].isna().all().all()


def test_left_join_fills_shared_columns_only_where_null(records, first_series):
    records = records.assign(series_id=["GSE_OLD", None, None, None])
    joined = left_join_records(records, first_series)
    assert list(joined["series_id"][:2]) == ["GSE_OLD", "GSE1"]


def test_patch_updates_without_duplicating(records, first_series, second_series):
    """Patching a later series fills its samples and never adds rows."""
    merged = patch_records(left_join_records(records, first_series), second_series)

    assert len(merged) == 4
    assert merged["REPOSITORY_ACCESSION"].is_unique
    by_accession = merged.set_index("REPOSITORY_ACCESSION")
    assert by_accession.loc["GSM_A", "series_id"] == "GSE1"
    assert by_accession.loc["GSM_C", "series_id"] == "GSE2"
    assert by_accession.loc["GSM_C", "R1_file"] == "SRR3_1"


def test_patch_null_never_erases(records, first_series):
    base = left_join_records(records, first_series)
    update = pd.DataFrame({"REPOSITORY_ACCESSION": ["GSM_A"], "series_id": ["GSE7"], "R1_file": [None]})

    patched = patch_records(base, update).set_index("REPOSITORY_ACCESSION")
    assert patched.loc["GSM_A", "series_id"] == "GSE7"
    assert patched.loc["GSM_A", "R1_file"] == "SRR1_1"


def test_patch_ignores_unknown_keys(records):
    update = pd.DataFrame({"REPOSITORY_ACCESSION": ["GSM_Z"], "series_id": ["GSE9"]})
    patched = patch_records(records, update)

    assert list(patched["REPOSITORY_ACCESSION"]) == list(records["REPOSITORY_ACCESSION"])
    assert patched["series_id"].isna().all()


def test_duplicate_keys_rejected(records):
    update = pd.DataFrame({"REPOSITORY_ACCESSION": ["GSM_A", "GSM_A"], "series_id": ["GSE1", "GSE2"]})
    with pytest.raises(ValueError, match="GSM_A"):
        patch_records(records, update)
    with pytest.raises(ValueError, match="GSM_A"):
        left_join_records(records, update)


def test_missing_key_rejected(records):
    with pytest.raises(ValueError, match="merge key"):
        left_join_records(records, pd.DataFrame({"series_id": ["GSE1"]}))


def test_merge_series_results(records, first_series, second_series):
    """First frame is joined, later frames are patched, requested columns always exist."""
    merged = merge_series_results(records, [first_series, second_series], columns=["series_id", "R2_file"])

    assert len(merged) == 4
    assert list(merged["series_id"]) == ["GSE1", "GSE1", "GSE2", "GSE2"]
    assert "R2_file" in merged.columns
    assert merged["R2_file"].isna().all()


def test_merge_without_frames(records):
    merged = merge_series_results(records, [], columns=["series_id"])
    assert list(merged.columns) == ["REPOSITORY_ACCESSION", "SUBJECT_ACCESSION", "series_id"]


def test_later_series_files_replace_earlier_ones():
    """A sample mapped by two series keeps one row holding the later series' files."""
    records = pd.DataFrame({"REPOSITORY_ACCESSION": ["GSM1"], "SUBJECT_ACCESSION": ["SUB1"]})
    first = pd.DataFrame({"REPOSITORY_ACCESSION": ["GSM1"], "R1_file": ["A"], "R2_file": ["B"]})
    second = pd.DataFrame({"REPOSITORY_ACCESSION": ["GSM1"], "R1_file": ["C"], "R2_file": ["D"]})

    merged = merge_series_results(records, [first, second])

    assert len(merged) == 1
    assert merged.loc[0, ["R1_file", "R2_file"]].tolist() == ["C", "D"]
