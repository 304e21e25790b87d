# File: pipeline/immport_pipeline/immport_record_joiner.py

import logging  # For logging join progress
import re  # For the repository accession namespace filter
from typing import Dict, List, Optional

import pandas as pd

from config.logger_config import configure_logger
from pipeline.abstract_etl.lookups import StudyTableSource
from pipeline.reconciliation.records import (
    AGE_UNIT,
    BIOSAMPLE_ACCESSION,
    EXPERIMENT_ACCESSION,
    EXPSAMPLE_ACCESSION,
    GENDER,
    JOIN_COLUMNS,
    MAX_SUBJECT_AGE,
    MIN_SUBJECT_AGE,
    REPOSITORY_ACCESSION,
    SUBJECT_ACCESSION,
)
from utils.exceptions import MissingStudyTableError, NoRepositoryDataError

# ---------------- ImmPort tables ----------------
SUBJECT_TABLE = "subject"
BIOSAMPLE_TABLE = "biosample"
EXPSAMPLE_TABLE = "expsample"
EXPERIMENT_TABLE = "experiment"
ARM_TO_SUBJECT_TABLE = "arm_2_subject"
EXPSAMPLE_TO_BIOSAMPLE_TABLE = "expsample_2_biosample"
REPOSITORY_TABLE = "expsample_public_repository"

STUDY_ACCESSION = "STUDY_ACCESSION"

# Columns kept from each table; anything else is dropped before joining
TABLE_COLUMNS: Dict[str, List[str]] = {
    REPOSITORY_TABLE: [EXPSAMPLE_ACCESSION, REPOSITORY_ACCESSION],
    EXPSAMPLE_TABLE: [EXPSAMPLE_ACCESSION, EXPERIMENT_ACCESSION],
    EXPERIMENT_TABLE: [EXPERIMENT_ACCESSION],
    EXPSAMPLE_TO_BIOSAMPLE_TABLE: [EXPSAMPLE_ACCESSION, BIOSAMPLE_ACCESSION],
    BIOSAMPLE_TABLE: [BIOSAMPLE_ACCESSION, SUBJECT_ACCESSION],
    SUBJECT_TABLE: [SUBJECT_ACCESSION, GENDER],
    ARM_TO_SUBJECT_TABLE: [SUBJECT_ACCESSION, MIN_SUBJECT_AGE, MAX_SUBJECT_AGE, AGE_UNIT],
}


class ImmportRecordJoiner:
    """
    Joins ImmPort study tables into one SampleRecord per public repository sample.

    Every join is an inner join: a sample whose experiment, biosample or subject
    cannot be traced is dropped rather than partially populated.

    Attributes:
        table_source (StudyTableSource): Where the ImmPort tables are read from.
        accession_pattern (re.Pattern): Namespace every REPOSITORY_ACCESSION must match.
        logger (logging.Logger): Logger instance for debug and info output.
    """

    def __init__(self, table_source: StudyTableSource, accession_pattern: str = r"^GSM\d+$", debug: bool = False) -> None:
        if table_source is None:
            raise ValueError("A study table source is required.")

        self.table_source = table_source
        self.accession_pattern = re.compile(accession_pattern)
        self.logger = configure_logger(
            name="ImmportRecordJoiner",
            log_file="immport_record_joiner.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

    def build_sample_records(self, study_accession: Optional[str] = None) -> pd.DataFrame:
        """
        Produces the SampleRecord set.

        Args:
            study_accession (Optional[str]): Restrict to experiments of one study (e.g. "SDY1").

        Returns:
            pd.DataFrame: One row per REPOSITORY_ACCESSION with JOIN_COLUMNS.

        Raises:
            NoRepositoryDataError: If the repository-link table is empty.
            MissingStudyTableError: If a table or a key column is missing.
        """
        # Step 1: the repository link table decides whether there is anything to do
        repository = self._load(REPOSITORY_TABLE)
        if repository.empty:
            self.logger.error(f"No public repository records found in '{REPOSITORY_TABLE}'.")
            raise NoRepositoryDataError(REPOSITORY_TABLE, study_accession)

        # Step 2: load the remaining tables
        expsample = self._load(EXPSAMPLE_TABLE)
        experiment = self._load_experiments(study_accession)
        expsample_biosample = self._load(EXPSAMPLE_TO_BIOSAMPLE_TABLE)
        biosample = self._load(BIOSAMPLE_TABLE)
        subject = self._load(SUBJECT_TABLE)
        arm_subject = self._load(ARM_TO_SUBJECT_TABLE)

        if study_accession:
            repository = self._restrict_to_study(repository, expsample, experiment, study_accession)

        # Step 3: inner joins along the declared foreign keys
        records = repository.merge(expsample, on=EXPSAMPLE_ACCESSION, how="inner")
        records = records.merge(experiment, on=EXPERIMENT_ACCESSION, how="inner")
        records = records.merge(expsample_biosample, on=EXPSAMPLE_ACCESSION, how="inner")
        records = records.merge(biosample, on=BIOSAMPLE_ACCESSION, how="inner")
        records = records.merge(subject, on=SUBJECT_ACCESSION, how="inner")
        records = records.merge(arm_subject, on=SUBJECT_ACCESSION, how="inner")
        self.logger.info(f"Joined {len(repository)} repository links into {len(records)} fully resolved rows.")

        # Step 4: keep sample-level accessions only (SRA-native links share this table)
        records = self.filter_repository_accessions(records)

        # Step 5: multi-path joins (e.g. a subject in several arms) repeat a sample; keep the first
        duplicated = records.duplicated(subset=REPOSITORY_ACCESSION, keep="first")
        if duplicated.any():
            self.logger.info(f"Dropping {int(duplicated.sum())} duplicate rows produced by multi-path joins.")
        records = records.loc[~duplicated].copy()

        for column in (MIN_SUBJECT_AGE, MAX_SUBJECT_AGE):
            records[column] = pd.to_numeric(records[column], errors="coerce")

        self.logger.info(f"Built {len(records)} sample records.")
        return records[JOIN_COLUMNS].reset_index(drop=True)

    def filter_repository_accessions(self, records: pd.DataFrame) -> pd.DataFrame:
        """
        Drops rows whose REPOSITORY_ACCESSION is outside the sample namespace.

        Args:
            records (pd.DataFrame): Rows with a REPOSITORY_ACCESSION column.

        Returns:
            pd.DataFrame: Matching rows only.
        """
        accessions = records[REPOSITORY_ACCESSION].astype("string").str.strip()
        keep = accessions.map(
            lambda value: bool(self.accession_pattern.match(value)) if isinstance(value, str) else False
        ).astype(bool)
        dropped = int((~keep).sum())
        if dropped:
            self.logger.info(f"Dropped {dropped} rows outside the accession pattern {self.accession_pattern.pattern}.")
        filtered = records.loc[keep].copy()
        filtered[REPOSITORY_ACCESSION] = accessions[keep]
        return filtered

    def _restrict_to_study(
        self,
        repository: pd.DataFrame,
        expsample: pd.DataFrame,
        experiment: pd.DataFrame,
        study_accession: str,
    ) -> pd.DataFrame:
        """
        Keeps only repository links whose expsample belongs to an experiment of the study.

        Raises:
            NoRepositoryDataError: If the study has no repository links at all.
        """
        study_expsamples = expsample.loc[
            expsample[EXPERIMENT_ACCESSION].isin(experiment[EXPERIMENT_ACCESSION]), EXPSAMPLE_ACCESSION
        ]
        repository = repository.loc[repository[EXPSAMPLE_ACCESSION].isin(study_expsamples)]
        if repository.empty:
            self.logger.error(f"Study {study_accession} has no records in '{REPOSITORY_TABLE}'.")
            raise NoRepositoryDataError(REPOSITORY_TABLE, study_accession)
        return repository

    def _load_experiments(self, study_accession: Optional[str]) -> pd.DataFrame:
        """Loads the experiment table, restricted to one study when requested."""
        if not study_accession:
            return self._load(EXPERIMENT_TABLE)

        experiment = self.table_source.read_table(EXPERIMENT_TABLE)
        self._require_columns(EXPERIMENT_TABLE, experiment, [EXPERIMENT_ACCESSION, STUDY_ACCESSION])
        experiment = experiment.loc[experiment[STUDY_ACCESSION].astype("string").str.strip() == study_accession]
        self.logger.info(f"Study {study_accession} has {len(experiment)} experiments.")
        return self._reduce(EXPERIMENT_TABLE, experiment)

    def _load(self, table_name: str) -> pd.DataFrame:
        """Reads a table and reduces it to the columns the join needs."""
        frame = self.table_source.read_table(table_name)
        self._require_columns(table_name, frame, TABLE_COLUMNS[table_name])
        return self._reduce(table_name, frame)

    @staticmethod
    def _reduce(table_name: str, frame: pd.DataFrame) -> pd.DataFrame:
        columns = TABLE_COLUMNS[table_name]
        reduced = frame[columns].copy()
        # Key columns are compared as trimmed strings across tables
        for column in columns:
            if column.endswith("_ACCESSION"):
                reduced[column] = reduced[column].astype("string").str.strip()
        key_columns = [column for column in columns if column.endswith("_ACCESSION")]
        return reduced.dropna(subset=key_columns).drop_duplicates()

    def _require_columns(self, table_name: str, frame: pd.DataFrame, columns: List[str]) -> None:
        missing = [column for column in columns if column not in frame.columns]
        if missing:
            self.logger.error(f"Table '{table_name}' is missing columns {missing}.")
            raise MissingStudyTableError(table_name, missing)
