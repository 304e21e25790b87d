# File: pipeline/matching/matrix_normalizer.py

import logging  # For logging identifier selection
import os  # For file extension handling
import re  # For the gene identifier pattern
from typing import Iterable, List, Optional

import pandas as pd

from config.logger_config import configure_logger
from utils.exceptions import UnresolvableIdentifierError

DEFAULT_GENE_ID_PATTERN = r"^ENS[A-Z]*G\d+(\.\d+)?$"
DEFAULT_SYMBOL_VOCABULARY = ("gene", "symbol")
DEFAULT_EXCLUDED_COLUMNS = ("Length",)


def make_unique(values: Iterable) -> List:
    """
    Suffixes repeated values so each is unique: X, X.1, X.2, ...

    Generated names never collide with values already present.
    """
    values = list(values)
    original = set(str(value) for value in values)
    counts = {}
    used = set()
    unique = []
    for value in values:
        key = str(value)
        if key not in used:
            used.add(key)
            unique.append(value)
            continue
        count = counts.get(key, 0)
        candidate = key
        while candidate in used or candidate in original:
            count += 1
            candidate = f"{key}.{count}"
        counts[key] = count
        used.add(candidate)
        unique.append(candidate)
    return unique


def read_matrix(path: str) -> pd.DataFrame:
    """
    Loads a count matrix from .csv, .tsv or .txt (optionally gzip compressed).

    Args:
        path (str): File path.

    Returns:
        pd.DataFrame: The raw matrix, no index promoted.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the extension is not supported.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Count matrix not found: {path}")

    name = path.lower()
    if name.endswith(".gz"):
        name = name[:-3]
    if name.endswith(".csv"):
        separator = ","
    elif name.endswith(".tsv") or name.endswith(".txt"):
        separator = "\t"
    else:
        raise ValueError(f"Unsupported count matrix format: {path}")
    return pd.read_csv(path, sep=separator)


class MatrixNormalizer:
    """
    Turns an arbitrarily shaped count matrix into a numeric matrix indexed by one identifier column.

    Attributes:
        gene_id_pattern (re.Pattern): Values of a gene identifier column must all match this.
        symbol_vocabulary (tuple): Case-insensitive name fragments of a gene symbol column.
        excluded_columns (tuple): Numeric columns that are never sample counts.
    """

    def __init__(
        self,
        gene_id_pattern: str = DEFAULT_GENE_ID_PATTERN,
        symbol_vocabulary: Iterable[str] = DEFAULT_SYMBOL_VOCABULARY,
        excluded_columns: Iterable[str] = DEFAULT_EXCLUDED_COLUMNS,
        debug: bool = False,
    ) -> None:
        self.gene_id_pattern = re.compile(gene_id_pattern)
        self.symbol_vocabulary = tuple(term.lower() for term in symbol_vocabulary)
        self.excluded_columns = tuple(excluded_columns)
        self.logger = configure_logger(
            name="MatrixNormalizer",
            log_file="matrix_normalizer.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

    @classmethod
    def from_settings(cls, settings, debug: bool = False) -> "MatrixNormalizer":
        """Builds a normalizer from the identifier heuristics in PipelineSettings."""
        return cls(
            gene_id_pattern=settings.gene_id_pattern,
            symbol_vocabulary=settings.symbol_vocabulary,
            excluded_columns=settings.excluded_numeric_columns,
            debug=debug,
        )

    def normalize(self, raw: pd.DataFrame, source: Optional[str] = None) -> pd.DataFrame:
        """
        Produces the canonical matrix.

        Args:
            raw (pd.DataFrame): Matrix with numeric count columns and text columns.
            source (Optional[str]): File name, used in logs and errors.

        Returns:
            pd.DataFrame: Numeric columns only, with the chosen identifier as index.

        Raises:
            UnresolvableIdentifierError: If several text columns exist and none is an identifier.
        """
        numeric_columns = [
            column for column in raw.columns
            if pd.api.types.is_numeric_dtype(raw[column]) and not pd.api.types.is_bool_dtype(raw[column])
        ]
        text_columns = [column for column in raw.columns if column not in numeric_columns]
        counts = [column for column in numeric_columns if column not in self.excluded_columns]
        label = source or "matrix"

        if not text_columns:
            self.logger.debug(f"{label}: no identifier column, keeping the existing index.")
            return raw[counts].copy()

        if len(text_columns) == 1:
            identifier = text_columns[0]
            self.logger.debug(f"{label}: promoting the only text column '{identifier}'.")
            return raw.set_index(identifier)[counts]

        identifier = self._gene_id_column(raw, text_columns)
        if identifier is not None:
            self.logger.info(f"{label}: '{identifier}' holds gene identifiers.")
            return raw.set_index(identifier)[counts]

        identifier = self._symbol_column(text_columns)
        if identifier is not None:
            self.logger.info(f"{label}: '{identifier}' is a gene symbol column; forcing unique values.")
            canonical = raw[counts].copy()
            canonical.index = pd.Index(make_unique(raw[identifier]), name=identifier)
            return canonical

        self.logger.error(f"{label}: no identifier among text columns {text_columns}.")
        raise UnresolvableIdentifierError(text_columns, source)

    def _gene_id_column(self, raw: pd.DataFrame, columns: List) -> Optional[str]:
        for column in columns:
            values = raw[column].dropna()
            if values.empty:
                continue
            if values.astype(str).map(lambda value: bool(self.gene_id_pattern.match(value))).all():
                return column
        return None

    def _symbol_column(self, columns: List) -> Optional[str]:
        for column in columns:
            name = str(column).lower()
            if any(term in name for term in self.symbol_vocabulary):
                return column
        return None
