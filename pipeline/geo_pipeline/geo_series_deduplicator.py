# File: pipeline/geo_pipeline/geo_series_deduplicator.py

import logging  # For logging classification decisions
from typing import Dict, Iterable, List, Optional, Set

from config.logger_config import configure_logger
from pipeline.abstract_etl.lookups import SampleMetadataLookup
from pipeline.reconciliation.records import SeriesRecord, SeriesRelation
from utils.exceptions import SourceLookupError

SUPERSERIES_MARKER = "SuperSeries of:"


class GeoSeriesDeduplicator:
    """
    Collapses sample accessions to the set of GEO series to process, without superseries.

    A superseries only aggregates other series, so keeping it alongside its
    constituents would reach the same samples twice.

    Attributes:
        lookup (SampleMetadataLookup): Source of sample-to-series links and relation metadata.
        marker (str): Literal prefix of relation text that marks a superseries.
        failures (Dict[str, str]): Lookup failures keyed by accession, collected per batch.
    """

    def __init__(self, lookup: SampleMetadataLookup, marker: str = SUPERSERIES_MARKER, debug: bool = False) -> None:
        if lookup is None:
            raise ValueError("A sample metadata lookup is required.")

        self.lookup = lookup
        self.marker = marker
        self.failures: Dict[str, str] = {}
        self._relations: Dict[str, Optional[SeriesRelation]] = {}
        self.logger = configure_logger(
            name="GeoSeriesDeduplicator",
            log_file="geo_series_deduplicator.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

    def resolve_series(self, sample_accessions: Iterable[str]) -> Set[str]:
        """
        Maps every sample to its owning series and returns the deduplicated union.

        Args:
            sample_accessions (Iterable[str]): GEO sample accessions.

        Returns:
            Set[str]: Series identifiers.
        """
        series: Set[str] = set()
        for accession in sorted(set(sample_accessions)):
            try:
                owners = self.lookup.get_series_for_sample(accession)
            except SourceLookupError as e:
                self.logger.error(f"Could not resolve series for sample {accession}: {e}")
                self.failures[accession] = str(e)
                continue
            series.update(owner for owner in owners if owner)

        self.logger.info(f"Resolved {len(series)} series from the sample set.")
        return series

    def is_superseries(self, relation: Optional[SeriesRelation]) -> bool:
        """
        A series is a superseries iff its relation text starts with the marker.
        Missing relation metadata is not evidence of aggregation.
        """
        if relation is None or not relation.relation_text:
            return False
        return relation.relation_text.startswith(self.marker)

    def filter_superseries(self, series: Iterable[str]) -> Set[str]:
        """
        Removes superseries from a set of series identifiers.

        Args:
            series (Iterable[str]): Series identifiers.

        Returns:
            Set[str]: The series that are not superseries.
        """
        kept: Set[str] = set()
        for series_id in set(series):
            if self.is_superseries(self._relation(series_id)):
                self.logger.info(f"Excluding superseries {series_id}.")
                continue
            kept.add(series_id)
        return kept

    def describe_series(self, series: Iterable[str]) -> List[SeriesRecord]:
        """
        Builds a SeriesRecord for each series, sorted by identifier.
        """
        records = []
        for series_id in sorted(set(series)):
            relation = self._relation(series_id)
            records.append(SeriesRecord(
                series_id=series_id,
                is_superseries=self.is_superseries(relation),
                overall_design=relation.overall_design if relation else None,
            ))
        return records

    def _relation(self, series_id: str) -> Optional[SeriesRelation]:
        # Relation metadata is fetched once per series and reused by describe_series
        if series_id not in self._relations:
            try:
                self._relations[series_id] = self.lookup.get_series_relation(series_id)
            except SourceLookupError as e:
                # Unknown relation is treated like absent relation: the series is kept
                self.logger.error(f"Could not fetch relation metadata for series {series_id}: {e}")
                self.failures[series_id] = str(e)
                self._relations[series_id] = None
        return self._relations[series_id]
