# File: pipeline/sra_pipeline/sra_file_mapper.py

import logging  # For logging mapping progress
import re  # For reversing the read file naming rule
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
from pydantic import ValidationError

from config.logger_config import configure_logger
from pipeline.abstract_etl.lookups import SampleMetadataLookup, SequenceArchiveLookup
from pipeline.reconciliation.records import (
    DESCRIPTION,
    PLATFORM_ID,
    READ_FILE_COLUMNS,
    REPOSITORY_ACCESSION,
    RUN_FILENAME_SEPARATOR,
    SERIES_ID,
    TITLE,
    LookupFailure,
    RunAccession,
)
from utils.exceptions import SourceLookupError
from utils.parallel_processing import ParallelProcessor

MAPPED_COLUMNS = [REPOSITORY_ACCESSION, SERIES_ID, TITLE, DESCRIPTION, PLATFORM_ID] + READ_FILE_COLUMNS

# Inverse of RunAccession.inferred_filenames: "<run_id>_<n>"
READ_FILENAME_PATTERN = re.compile(r"^(?P<run_id>.+)_(?P<read>[1-9]\d*)$")


def assign_read_files(runs: Iterable[RunAccession]) -> Dict[str, Optional[str]]:
    """
    Places inferred filenames into the R1_file..R3_file slots.

    Slot n holds file n of every run, joined with ";" in run order; unused slots are None.

    Args:
        runs (Iterable[RunAccession]): Runs of one sample.

    Returns:
        Dict[str, Optional[str]]: Slot column to filename(s).
    """
    slots: Dict[str, List[str]] = {column: [] for column in READ_FILE_COLUMNS}
    for run in runs:
        for column, filename in zip(READ_FILE_COLUMNS, run.inferred_filenames):
            slots[column].append(filename)
    return {
        column: RUN_FILENAME_SEPARATOR.join(filenames) if filenames else None
        for column, filenames in slots.items()
    }


def run_id_from_filename(filename: str) -> str:
    """
    Recovers the run accession from an inferred read filename.

    Args:
        filename (str): A name produced by RunAccession.inferred_filenames, e.g. "SRR100_2".

    Returns:
        str: The run accession, e.g. "SRR100".

    Raises:
        ValueError: If the name does not follow the "<run_id>_<n>" convention.
    """
    match = READ_FILENAME_PATTERN.match(filename.strip()) if filename else None
    if not match:
        raise ValueError(f"'{filename}' does not follow the <run_id>_<n> naming convention.")
    return match.group("run_id")


class SampleRunProcessor(ParallelProcessor):
    """
    Looks up the runs and read counts of each sample on a bounded worker pool.
    """

    def __init__(self, accessions: List[str], archive_lookup: SequenceArchiveLookup, max_workers: int = 3):
        super().__init__(accessions, max_workers=max_workers)
        self.archive_lookup = archive_lookup

    def process_resource(self, resource_id: str) -> Tuple[List[RunAccession], Dict[str, str]]:
        """
        Returns the sample's runs plus failures of individual runs.

        A SourceLookupError while listing runs fails the whole sample; a failed
        read count only drops that run.
        """
        runs: List[RunAccession] = []
        run_failures: Dict[str, str] = {}
        for run_id in self.archive_lookup.get_runs_for_sample(resource_id):
            try:
                read_count = self.archive_lookup.get_read_count(run_id)
                runs.append(RunAccession(
                    run_id=run_id,
                    parent_sample_accession=resource_id,
                    read_file_count=read_count,
                ))
            except (SourceLookupError, ValidationError, ValueError) as e:
                run_failures[run_id] = str(e)
        return runs, run_failures


class SraFileMapper:
    """
    Infers the raw read file names of every sample in a GEO series.

    The mapper never lists or downloads files: names are built from the run
    accession and the read count declared in SRA.

    Attributes:
        sample_lookup (SampleMetadataLookup): Lists a series' samples and their GEO metadata.
        archive_lookup (SequenceArchiveLookup): Lists runs and read counts.
        max_workers (int): Concurrent sample lookups.
        failures (List[LookupFailure]): Per-item failures collected across calls.
    """

    def __init__(
        self,
        sample_lookup: SampleMetadataLookup,
        archive_lookup: SequenceArchiveLookup,
        max_workers: int = 3,
        debug: bool = False,
    ) -> None:
        if sample_lookup is None or archive_lookup is None:
            raise ValueError("Both a sample metadata lookup and a sequence archive lookup are required.")

        self.sample_lookup = sample_lookup
        self.archive_lookup = archive_lookup
        self.max_workers = max_workers
        self.failures: List[LookupFailure] = []
        self.logger = configure_logger(
            name="SraFileMapper",
            log_file="sra_file_mapper.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

    def map_files(self, series_id: str, restrict_to: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """
        Builds one row per sample of the series with GEO metadata and inferred read files.

        Args:
            series_id (str): GEO series accession.
            restrict_to (Optional[Iterable[str]]): Only map these sample accessions.

        Returns:
            pd.DataFrame: MAPPED_COLUMNS, unique on REPOSITORY_ACCESSION. Samples without
            SRA runs keep null read file columns.
        """
        if not series_id:
            raise ValueError("Series ID cannot be empty.")

        try:
            samples = self.sample_lookup.get_series_samples(series_id)
        except SourceLookupError as e:
            self.logger.error(f"Could not list samples of series {series_id}: {e}")
            self.failures.append(LookupFailure(stage="series samples", item=series_id, message=str(e)))
            return pd.DataFrame(columns=MAPPED_COLUMNS)

        if restrict_to is not None:
            wanted = set(restrict_to)
            samples = [sample for sample in samples if sample.get("accession") in wanted]

        # A sample listed twice keeps its first metadata row
        samples_by_accession = {}
        for sample in samples:
            accession = sample.get("accession")
            if accession and accession not in samples_by_accession:
                samples_by_accession[accession] = sample
        self.logger.info(f"Mapping read files for {len(samples_by_accession)} samples of series {series_id}.")

        processor = SampleRunProcessor(list(samples_by_accession), self.archive_lookup, self.max_workers)
        results, failures = processor.execute()

        for accession, message in failures.items():
            self.failures.append(LookupFailure(stage="sample runs", item=accession, message=message))

        rows = []
        for accession, sample in samples_by_accession.items():
            row = {
                REPOSITORY_ACCESSION: accession,
                SERIES_ID: series_id,
                TITLE: sample.get("title"),
                DESCRIPTION: sample.get("description"),
                PLATFORM_ID: sample.get("platform_id"),
            }
            runs, run_failures = results.get(accession, ([], {}))
            for run_id, message in run_failures.items():
                self.failures.append(LookupFailure(stage="run read count", item=run_id, message=message))
            if not runs and accession in results and not run_failures:
                self.logger.debug(f"Sample {accession} has no released SRA runs.")
            row.update(assign_read_files(runs))
            rows.append(row)

        return pd.DataFrame(rows, columns=MAPPED_COLUMNS)
