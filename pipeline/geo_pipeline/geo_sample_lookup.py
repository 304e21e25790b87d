# File: pipeline/geo_pipeline/geo_sample_lookup.py

import logging  # For logging lookup progress
import os  # For cache directory management
import threading  # For guarding the series cache across worker threads
from typing import Dict, List, Optional

import GEOparse

from config.logger_config import configure_logger
from config.pipeline_config import PipelineSettings
from pipeline.abstract_etl.lookups import SampleMetadataLookup
from pipeline.reconciliation.records import SeriesRelation
from utils.retry import call_with_backoff


def _first(metadata: Dict[str, List[str]], key: str) -> Optional[str]:
    """Returns the first non-empty value of a GEO metadata field."""
    for value in metadata.get(key, []) or []:
        if value and value.strip():
            return value.strip()
    return None


def _joined(metadata: Dict[str, List[str]], key: str) -> Optional[str]:
    """Joins a multi-line GEO metadata field into one string."""
    values = [value.strip() for value in metadata.get(key, []) or [] if value and value.strip()]
    return " ".join(values) if values else None


class GeoparseSampleLookup(SampleMetadataLookup):
    """
    SampleMetadataLookup backed by GEO SOFT records fetched with GEOparse.

    Series records are cached for the lifetime of the lookup, since relation
    metadata and sample listings come from the same family file.
    """

    def __init__(self, settings: PipelineSettings, debug: bool = False) -> None:
        self.settings = settings
        self.destdir = settings.geo_cache_dir
        os.makedirs(self.destdir, exist_ok=True)

        self.logger = configure_logger(
            name="GeoparseSampleLookup",
            log_file="geo_sample_lookup.log",
            level=logging.DEBUG if debug else logging.INFO,
        )
        self._series_cache: Dict[str, object] = {}
        self._cache_lock = threading.Lock()

    def _fetch(self, accession: str, how: str = "full"):
        """Downloads and parses one GEO record with retries."""
        return call_with_backoff(
            lambda: GEOparse.get_GEO(geo=accession, destdir=self.destdir, how=how, silent=True),
            operation="GEO record fetch",
            item=accession,
            max_retries=self.settings.max_retries,
            backoff_base=self.settings.backoff_base,
            backoff_cap=self.settings.backoff_cap,
        )

    def _get_series(self, series_id: str):
        with self._cache_lock:
            cached = self._series_cache.get(series_id)
        if cached is not None:
            return cached

        self.logger.info(f"Fetching GEO series {series_id}")
        gse = self._fetch(series_id)
        with self._cache_lock:
            self._series_cache[series_id] = gse
        return gse

    def get_series_for_sample(self, accession: str) -> List[str]:
        gsm = self._fetch(accession, how="brief")
        series_ids = [value.strip() for value in gsm.metadata.get("series_id", []) if value and value.strip()]
        if not series_ids:
            self.logger.warning(f"Sample {accession} is not linked to any series.")
        return series_ids

    def get_series_relation(self, series_id: str) -> Optional[SeriesRelation]:
        gse = self._get_series(series_id)
        relation_text = _first(gse.metadata, "relation")
        overall_design = _joined(gse.metadata, "overall_design")
        if relation_text is None and overall_design is None:
            return None
        return SeriesRelation(relation_text=relation_text, overall_design=overall_design)

    def get_series_samples(self, series_id: str) -> List[Dict[str, Optional[str]]]:
        gse = self._get_series(series_id)
        samples = []
        for accession, gsm in gse.gsms.items():
            samples.append({
                "accession": accession,
                "title": _first(gsm.metadata, "title"),
                "description": _joined(gsm.metadata, "description"),
                "platform_id": _first(gsm.metadata, "platform_id"),
            })
        self.logger.debug(f"Series {series_id} lists {len(samples)} samples.")
        return samples
