# tests/conftest.py
import os
import sys

import pandas as pd
import pytest

# Add the parent directory to the system path to ensure correct module import
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pipeline.abstract_etl.lookups import SampleMetadataLookup, SequenceArchiveLookup, StudyTableSource  # noqa: E402
from utils.exceptions import MissingStudyTableError  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def isolated_log_dir(tmp_path_factory):
    """
    Routes every configured logger's file handler into a temporary directory.
    """
    log_dir = tmp_path_factory.mktemp("logs")
    previous = os.environ.get("RECONCILER_LOG_DIR")
    os.environ["RECONCILER_LOG_DIR"] = str(log_dir)
    yield log_dir
    if previous is None:
        os.environ.pop("RECONCILER_LOG_DIR", None)
    else:
        os.environ["RECONCILER_LOG_DIR"] = previous


# ---------------- In-memory collaborators ----------------

class InMemoryTableSource(StudyTableSource):
    """StudyTableSource over a dict of DataFrames."""

    def __init__(self, tables):
        self.tables = tables

    def read_table(self, table_name):
        if table_name not in self.tables:
            raise MissingStudyTableError(table_name)
        return self.tables[table_name].copy()


class InMemorySampleLookup(SampleMetadataLookup):
    """SampleMetadataLookup over plain dicts; values that are exceptions are raised."""

    def __init__(self, sample_series=None, relations=None, series_samples=None):
        self.sample_series = sample_series or {}
        self.relations = relations or {}
        self.series_samples = series_samples or {}
        self.calls = []

    @staticmethod
    def _value(value):
        if isinstance(value, Exception):
            raise value
        return value

    def get_series_for_sample(self, accession):
        self.calls.append(("series_for_sample", accession))
        return self._value(self.sample_series.get(accession, []))

    def get_series_relation(self, series_id):
        self.calls.append(("series_relation", series_id))
        return self._value(self.relations.get(series_id))

    def get_series_samples(self, series_id):
        self.calls.append(("series_samples", series_id))
        return self._value(self.series_samples.get(series_id, []))


class InMemoryArchiveLookup(SequenceArchiveLookup):
    """SequenceArchiveLookup over plain dicts; values that are exceptions are raised."""

    def __init__(self, runs=None, read_counts=None):
        self.runs = runs or {}
        self.read_counts = read_counts or {}

    def get_runs_for_sample(self, accession):
        value = self.runs.get(accession, [])
        if isinstance(value, Exception):
            raise value
        return value

    def get_read_count(self, run_id):
        value = self.read_counts[run_id]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def study_tables():
    """
    A small ImmPort release: three GEO samples that resolve fully, one SRA-native link,
    one sample whose biosample has no subject, and one subject enrolled in two arms.
    """
    return {
        "expsample_public_repository": pd.DataFrame({
            "EXPSAMPLE_ACCESSION": ["ES1", "ES2", "ES3", "ES4", "ES5"],
            "REPOSITORY_ACCESSION": ["GSM100", "GSM200", "SRX300", "GSM400", "GSM500"],
            "REPOSITORY_NAME": ["GEO", "GEO", "SRA", "GEO", "GEO"],
        }),
        "expsample": pd.DataFrame({
            "EXPSAMPLE_ACCESSION": ["ES1", "ES2", "ES3", "ES4", "ES5"],
            "EXPERIMENT_ACCESSION": ["EXP1", "EXP1", "EXP1", "EXP1", "EXP2"],
        }),
        "experiment": pd.DataFrame({
            "EXPERIMENT_ACCESSION": ["EXP1", "EXP2"],
            "STUDY_ACCESSION": ["SDY1", "SDY2"],
        }),
        "expsample_2_biosample": pd.DataFrame({
            "EXPSAMPLE_ACCESSION": ["ES1", "ES2", "ES3", "ES4", "ES5"],
            "BIOSAMPLE_ACCESSION": ["BS1", "BS2", "BS3", "BS4", "BS5"],
        }),
        "biosample": pd.DataFrame({
            "BIOSAMPLE_ACCESSION": ["BS1", "BS2", "BS3", "BS4", "BS5"],
            "SUBJECT_ACCESSION": ["SUB1", "SUB2", "SUB1", "SUB_MISSING", "SUB3"],
        }),
        "subject": pd.DataFrame({
            "SUBJECT_ACCESSION": ["SUB1", "SUB2", "SUB3"],
            "GENDER": ["Female", "Male", "Female"],
        }),
        "arm_2_subject": pd.DataFrame({
            "ARM_ACCESSION": ["ARM1", "ARM1", "ARM2", "ARM1"],
            "SUBJECT_ACCESSION": ["SUB1", "SUB2", "SUB2", "SUB3"],
            "MIN_SUBJECT_AGE": ["30", "41", "42", "25"],
            "MAX_SUBJECT_AGE": ["30", "41", "42", "25"],
            "AGE_UNIT": ["Years", "Years", "Years", "Years"],
        }),
    }


@pytest.fixture
def table_source(study_tables):
    return InMemoryTableSource(study_tables)


@pytest.fixture
def make_table_source():
    return InMemoryTableSource


@pytest.fixture
def make_sample_lookup():
    return InMemorySampleLookup


@pytest.fixture
def make_archive_lookup():
    return InMemoryArchiveLookup
