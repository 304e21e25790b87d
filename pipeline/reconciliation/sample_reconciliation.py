# File: pipeline/reconciliation/sample_reconciliation.py

import json  # For the summary report
import logging  # For pipeline logging
import os  # For output paths and process information
import time  # For runtime tracking
from typing import Dict, List, Optional

import pandas as pd
import psutil
from tqdm import tqdm

from config.logger_config import configure_logger
from config.pipeline_config import PipelineSettings
from pipeline.abstract_etl.lookups import SampleMetadataLookup, SequenceArchiveLookup, StudyTableSource
from pipeline.geo_pipeline.geo_series_deduplicator import GeoSeriesDeduplicator
from pipeline.immport_pipeline.immport_record_joiner import ImmportRecordJoiner
from pipeline.reconciliation.record_merger import merge_series_results
from pipeline.reconciliation.records import (
    REPOSITORY_ACCESSION,
    SAMPLE_RECORD_COLUMNS,
    LookupFailure,
    SeriesRecord,
)
from pipeline.sra_pipeline.sra_file_mapper import SraFileMapper


class SampleReconciliationPipeline:
    """
    Runs the reconciliation stages in their strict order:
    ImmPort join, series resolution, superseries filtering, per-series file mapping, fold.

    Fatal errors propagate; lookup failures are collected and reported once the batch ends.
    """

    def __init__(
        self,
        table_source: StudyTableSource,
        sample_lookup: SampleMetadataLookup,
        archive_lookup: SequenceArchiveLookup,
        settings: Optional[PipelineSettings] = None,
        debug: bool = False,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.logger = configure_logger(
            name="SampleReconciliationPipeline",
            log_file="sample_reconciliation.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

        self.joiner = ImmportRecordJoiner(table_source, self.settings.sample_accession_pattern, debug=debug)
        self.deduplicator = GeoSeriesDeduplicator(sample_lookup, self.settings.superseries_marker, debug=debug)
        self.file_mapper = SraFileMapper(sample_lookup, archive_lookup, self.settings.max_workers, debug=debug)

        self.series_records: List[SeriesRecord] = []
        self.failures: List[LookupFailure] = []
        self.stats: Dict[str, object] = {
            "total_samples": 0,
            "total_series": 0,
            "superseries_excluded": 0,
            "samples_with_read_files": 0,
            "runtime": 0,
            "memory_usage": 0,
            "cpu_usage": 0,
        }

    def run(self, study_accession: Optional[str] = None) -> pd.DataFrame:
        """
        Reconciles one study.

        Args:
            study_accession (Optional[str]): ImmPort study to restrict the join to.

        Returns:
            pd.DataFrame: SampleRecord rows with SAMPLE_RECORD_COLUMNS.

        Raises:
            NoRepositoryDataError: If the study has no repository links.
            MissingStudyTableError: If a study table cannot be read.
        """
        start_time = time.time()

        # Stage 1: ImmPort join
        records = self.joiner.build_sample_records(study_accession)
        self.stats["total_samples"] = len(records)

        # Stage 2: series set without superseries
        all_series = self.deduplicator.resolve_series(records[REPOSITORY_ACCESSION])
        series = sorted(self.deduplicator.filter_superseries(all_series))
        self.series_records = self.deduplicator.describe_series(all_series)
        self.stats["total_series"] = len(series)
        self.stats["superseries_excluded"] = len(all_series) - len(series)
        self.logger.info(f"Processing {len(series)} series ({len(all_series) - len(series)} superseries excluded).")

        # Stage 3: per-series metadata and read files, folded serially in series order
        accessions = set(records[REPOSITORY_ACCESSION])
        series_frames = []
        for series_id in tqdm(series, desc="Mapping series", disable=not series):
            series_frames.append(self.file_mapper.map_files(series_id, restrict_to=accessions))
        records = merge_series_results(records, series_frames, columns=SAMPLE_RECORD_COLUMNS)
        records = records[SAMPLE_RECORD_COLUMNS]

        self.stats["samples_with_read_files"] = int(records["R1_file"].notna().sum())
        self.stats["runtime"] = time.time() - start_time
        self._collect_failures()
        self.report_failures()
        return records

    def _collect_failures(self) -> None:
        failures = [
            LookupFailure(stage="sample series", item=item, message=message)
            for item, message in self.deduplicator.failures.items()
        ]
        failures.extend(self.file_mapper.failures)
        self.failures = failures

    def report_failures(self) -> None:
        """Logs every per-item failure of the batch in one block."""
        if not self.failures:
            self.logger.info("All lookups completed without failures.")
            return
        self.logger.warning(f"{len(self.failures)} lookups failed; affected fields were left empty:")
        for failure in self.failures:
            self.logger.warning(f"  [{failure.stage}] {failure.item}: {failure.message}")

    # ----------------------------- Output Methods ---------------------------------

    def write_outputs(self, records: pd.DataFrame, output_dir: Optional[str] = None) -> Dict[str, str]:
        """
        Writes samples.tsv, series.tsv and the summary report.

        Args:
            records (pd.DataFrame): Result of run().
            output_dir (Optional[str]): Target directory; defaults to the configured output_dir.

        Returns:
            Dict[str, str]: Artifact name to written path.
        """
        output_dir = output_dir or self.settings.output_dir
        os.makedirs(output_dir, exist_ok=True)

        sample_path = os.path.join(output_dir, self.settings.sample_table_name)
        records.to_csv(sample_path, sep="\t", index=False)
        self.logger.info(f"Sample table written to {sample_path}")

        series_path = os.path.join(output_dir, self.settings.series_table_name)
        series_frame = pd.DataFrame(
            [[record.series_id, record.is_superseries, record.overall_design] for record in self.series_records],
            columns=["series_id", "is_superseries", "overall_design"],
        )
        series_frame.to_csv(series_path, sep="\t", index=False)
        self.logger.info(f"Series table written to {series_path}")

        summary_path = os.path.join(output_dir, self.settings.summary_name)
        self.generate_summary_report(summary_path)
        return {"samples": sample_path, "series": series_path, "summary": summary_path}

    def log_resource_usage(self) -> None:
        """
        Logs the memory and CPU usage of the pipeline and updates stats.
        """
        try:
            memory_usage = psutil.Process(os.getpid()).memory_info().rss / (1024 ** 2)
            cpu_usage = psutil.cpu_percent(interval=None)
            self.logger.info(f"Memory usage: {memory_usage:.2f} MB")
            self.logger.info(f"CPU usage: {cpu_usage:.2f}%")
            self.stats["memory_usage"] = memory_usage
            self.stats["cpu_usage"] = cpu_usage
        except psutil.Error as e:
            self.logger.error(f"Error tracking resource usage: {e}")

    def generate_summary_report(self, summary_path: str) -> None:
        """
        Saves run statistics and lookup failures as JSON.
        """
        self.log_resource_usage()
        summary = dict(self.stats)
        summary["failures"] = [
            {"stage": failure.stage, "item": failure.item, "message": failure.message}
            for failure in self.failures
        ]
        with open(summary_path, "w") as summary_file:
            json.dump(summary, summary_file, indent=4)
        self.logger.info(f"Pipeline summary saved to {summary_path}")
