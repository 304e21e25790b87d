# File: pipeline/abstract_etl/lookups.py

from abc import ABC, abstractmethod  # Importing abstract base classes from Python's built-in library
from typing import Dict, List, Optional  # Importing typing helpers for return types

import pandas as pd

from pipeline.reconciliation.records import SeriesRelation


class StudyTableSource(ABC):
    """
    Abstract base class for reading named study-metadata tables (ImmPort release tables).
    """

    @abstractmethod
    def read_table(self, table_name: str) -> pd.DataFrame:
        """
        Reads one study table.

        Args:
            table_name (str): ImmPort table name, e.g. "expsample_public_repository".

        Returns:
            pd.DataFrame: Table rows with upper-case column names.

        Raises:
            MissingStudyTableError: If the table cannot be found or read.
        """
        pass


class SampleMetadataLookup(ABC):
    """
    Abstract base class for sample/series metadata held by the public repository (GEO).
    """

    @abstractmethod
    def get_series_for_sample(self, accession: str) -> List[str]:
        """
        Returns every series that owns the sample; an empty list if none is known.
        """
        pass

    @abstractmethod
    def get_series_relation(self, series_id: str) -> Optional[SeriesRelation]:
        """
        Returns the series' relation metadata, or None if the series declares none.
        """
        pass

    @abstractmethod
    def get_series_samples(self, series_id: str) -> List[Dict[str, Optional[str]]]:
        """
        Returns one dict per sample in the series with keys
        "accession", "title", "description" and "platform_id".
        """
        pass


class SequenceArchiveLookup(ABC):
    """
    Abstract base class for the sequence-read archive (SRA).
    """

    @abstractmethod
    def get_runs_for_sample(self, accession: str) -> List[str]:
        """
        Returns the run accessions linked to a repository sample; empty when unreleased.
        """
        pass

    @abstractmethod
    def get_read_count(self, run_id: str) -> int:
        """
        Returns the declared number of reads per spot (1..3) for a run.
        """
        pass
