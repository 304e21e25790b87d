# File: config/pipeline_config.py
# Loads pipeline settings from YAML, validates them with pydantic, and pulls NCBI credentials
# from config/.env so adapters never read the environment themselves.

import logging  # For logging configuration events
import os  # For accessing environment variables
import re  # For validating configured regular expressions
from pathlib import Path  # For managing filesystem paths
from typing import List, Optional

from dotenv import load_dotenv  # Loads environment variables from a .env file
from pydantic import BaseModel, Field, ValidationError, field_validator

from utils.config_utils import ConfigLoaderError, load_config

logger = logging.getLogger(__name__)

# Location of the packaged defaults and the optional .env file
CONFIG_DIR = Path(__file__).resolve().parent
DEFAULT_SETTINGS_FILE = CONFIG_DIR / "pipeline_settings.yaml"
ENV_FILE = CONFIG_DIR / ".env"


class PipelineSettings(BaseModel):
    """
    Validated settings for one reconciliation run.

    Attributes:
        sample_accession_pattern: Regex every REPOSITORY_ACCESSION must match (GEO samples).
        superseries_marker: Literal prefix of relation text that marks a superseries.
        gene_id_pattern: Regex a column's values must match to be taken as gene identifiers.
        symbol_vocabulary: Name fragments that mark a gene symbol column.
        excluded_numeric_columns: Numeric columns that are never sample counts.
        max_workers: Upper bound on concurrent external lookups.
        max_retries: Attempts per external lookup before it is reported as failed.
        backoff_base: First backoff delay in seconds; doubles after every failure.
        backoff_cap: Largest delay between two attempts.
        request_timeout: HTTP timeout for E-utilities calls.
        eutils_base_url: NCBI E-utilities endpoint.
        geo_cache_dir: Directory GEOparse writes SOFT files to.
        output_dir: Directory for produced artifacts.
        ncbi_api_key: Optional NCBI API key (from NCBI_API_KEY).
        ncbi_email: Optional contact e-mail sent with E-utilities requests (from NCBI_EMAIL).
    """
    sample_accession_pattern: str = r"^GSM\d+$"
    superseries_marker: str = "SuperSeries of:"
    gene_id_pattern: str = r"^ENS[A-Z]*G\d+(\.\d+)?$"
    symbol_vocabulary: List[str] = Field(default_factory=lambda: ["gene", "symbol"])
    excluded_numeric_columns: List[str] = Field(default_factory=lambda: ["Length"])
    max_workers: int = Field(default=3, ge=1, le=8)
    max_retries: int = Field(default=4, ge=1)
    backoff_base: float = Field(default=1.0, ge=0)
    backoff_cap: float = Field(default=30.0, ge=0)
    request_timeout: int = Field(default=30, gt=0)
    eutils_base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/"
    geo_cache_dir: str = "./resources/geo_cache"
    output_dir: str = "./resources/output"
    sample_table_name: str = "samples.tsv"
    series_table_name: str = "series.tsv"
    summary_name: str = "pipeline_summary.json"
    ncbi_api_key: Optional[str] = None
    ncbi_email: Optional[str] = None

    @field_validator("sample_accession_pattern", "gene_id_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        # Fail at load time rather than on the first record
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid regular expression '{value}': {e}") from e
        return value

    @field_validator("symbol_vocabulary")
    @classmethod
    def _lower_vocabulary(cls, value: List[str]) -> List[str]:
        return [term.lower() for term in value if term]


def load_pipeline_settings(config_path: Optional[str] = None, env_path: Optional[Path] = None) -> PipelineSettings:
    """
    Builds PipelineSettings from the packaged defaults, an optional override file and the environment.

    Args:
        config_path (Optional[str]): YAML file whose keys override the packaged defaults.
        env_path (Optional[Path]): .env file holding NCBI credentials. Defaults to config/.env.

    Returns:
        PipelineSettings: Validated settings.

    Raises:
        ConfigLoaderError: If a settings file cannot be parsed or fails validation.
    """
    # Packaged defaults are optional on disk; the model carries the same values
    settings = load_config(str(DEFAULT_SETTINGS_FILE), default_config={})
    if config_path:
        settings.update(load_config(config_path))
        logger.info(f"Loaded pipeline settings override from {config_path}")

    # Credentials come from the environment, never from the YAML file
    load_dotenv(dotenv_path=env_path or ENV_FILE)
    settings.setdefault("ncbi_api_key", os.getenv("NCBI_API_KEY"))
    settings.setdefault("ncbi_email", os.getenv("NCBI_EMAIL"))

    try:
        return PipelineSettings(**settings)
    except ValidationError as e:
        raise ConfigLoaderError(f"Invalid pipeline settings: {e}") from e
