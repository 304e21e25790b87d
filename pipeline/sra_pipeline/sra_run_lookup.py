# File: pipeline/sra_pipeline/sra_run_lookup.py

import logging  # For logging lookup progress
import threading  # For guarding the read count cache across worker threads
from typing import Dict, List, Optional

import requests
from lxml import etree

from config.logger_config import configure_logger
from config.pipeline_config import PipelineSettings
from pipeline.abstract_etl.lookups import SequenceArchiveLookup
from utils.exceptions import SourceLookupError
from utils.retry import call_with_backoff

# Tool name reported to NCBI with every request
EUTILS_TOOL = "sample_reconciliation"
# Read counts implied by the declared library layout when run statistics are absent
LAYOUT_READ_COUNTS = {"SINGLE": 1, "PAIRED": 2}


class EutilsSequenceArchiveLookup(SequenceArchiveLookup):
    """
    SequenceArchiveLookup backed by NCBI E-utilities (esearch + efetch on db=sra).

    Read counts come from the declared run statistics (nreads), never from a file listing.

    Attributes:
        settings (PipelineSettings): Endpoint, credentials and retry settings.
        logger (logging.Logger): Logger instance for debug and info output.
    """

    def __init__(self, settings: PipelineSettings, debug: bool = False) -> None:
        self.settings = settings
        self.base_url = settings.eutils_base_url.rstrip("/") + "/"
        self.logger = configure_logger(
            name="EutilsSequenceArchiveLookup",
            log_file="sra_run_lookup.log",
            level=logging.DEBUG if debug else logging.INFO,
        )
        # Read counts seen while listing runs, reused by get_read_count
        self._read_counts: Dict[str, int] = {}
        self._cache_lock = threading.Lock()

    def get_runs_for_sample(self, accession: str) -> List[str]:
        packages = self._fetch_packages(accession)
        if packages is None:
            self.logger.info(f"No SRA record is linked to {accession}; it may be unreleased.")
            return []

        runs = []
        for run in packages.iter("RUN"):
            run_id = run.get("accession")
            if not run_id or run_id in runs:
                continue
            runs.append(run_id)
            read_count = self._declared_read_count(run)
            if read_count is not None:
                with self._cache_lock:
                    self._read_counts[run_id] = read_count
        self.logger.debug(f"Sample {accession} links to runs {runs}")
        return runs

    def get_read_count(self, run_id: str) -> int:
        with self._cache_lock:
            cached = self._read_counts.get(run_id)
        if cached is not None:
            return cached

        packages = self._fetch_packages(run_id)
        if packages is None:
            raise ValueError(f"Run {run_id} was not found in SRA.")
        for run in packages.iter("RUN"):
            if run.get("accession") == run_id:
                read_count = self._declared_read_count(run)
                if read_count is not None:
                    return read_count
        raise ValueError(f"Run {run_id} declares no read count.")

    # ---------------- E-utilities helpers ----------------

    def _params(self, **params) -> Dict[str, str]:
        params["tool"] = EUTILS_TOOL
        if self.settings.ncbi_api_key:
            params["api_key"] = self.settings.ncbi_api_key
        if self.settings.ncbi_email:
            params["email"] = self.settings.ncbi_email
        return params

    def _get(self, endpoint: str, item: str, **params) -> bytes:
        def request() -> bytes:
            response = requests.get(
                f"{self.base_url}{endpoint}",
                params=self._params(**params),
                timeout=self.settings.request_timeout,
            )
            # 429 and 5xx are retried; other HTTP errors propagate
            response.raise_for_status()
            return response.content

        return call_with_backoff(
            request,
            operation=f"SRA {endpoint}",
            item=item,
            max_retries=self.settings.max_retries,
            backoff_base=self.settings.backoff_base,
            backoff_cap=self.settings.backoff_cap,
        )

    def _fetch_packages(self, term: str) -> Optional[etree._Element]:
        """Searches db=sra for term and returns the EXPERIMENT_PACKAGE_SET, or None if nothing matches."""
        content = self._get("esearch.fcgi", term, db="sra", term=term, retmax="100")
        search = self._parse("esearch.fcgi", term, content)
        uids = [element.text for element in search.findall(".//IdList/Id") if element.text]
        if not uids:
            return None

        content = self._get("efetch.fcgi", term, db="sra", id=",".join(uids), rettype="xml")
        return self._parse("efetch.fcgi", term, content)

    def _parse(self, endpoint: str, item: str, content: bytes) -> etree._Element:
        """Parses an E-utilities reply; an HTML error page or truncated XML fails only this item."""
        try:
            return etree.fromstring(content)
        except etree.XMLSyntaxError as e:
            self.logger.error(f"SRA {endpoint} returned unparsable XML for {item}: {e}")
            raise SourceLookupError(f"SRA {endpoint}", item, 1, e) from e

    def _declared_read_count(self, run: etree._Element) -> Optional[int]:
        """Reads nreads from run statistics, falling back to the experiment's library layout."""
        statistics = run.find("Statistics")
        if statistics is not None and statistics.get("nreads"):
            try:
                return int(statistics.get("nreads"))
            except ValueError:
                self.logger.warning(f"Run {run.get('accession')} has a non-numeric nreads value.")

        package = run.getparent()
        while package is not None and package.tag != "EXPERIMENT_PACKAGE":
            package = package.getparent()
        if package is None:
            return None
        layout = package.find(".//LIBRARY_LAYOUT")
        if layout is None:
            return None
        for child in layout:
            if child.tag in LAYOUT_READ_COUNTS:
                return LAYOUT_READ_COUNTS[child.tag]
        return None
