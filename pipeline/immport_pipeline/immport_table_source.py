# File: pipeline/immport_pipeline/immport_table_source.py

import logging  # For logging table reads
import os  # For file and directory management
from typing import Dict, Optional

import pandas as pd
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from config.logger_config import configure_logger
from pipeline.abstract_etl.lookups import StudyTableSource
from utils.exceptions import MissingStudyTableError


def _normalize_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Upper-cases and strips column names so both release formats share one schema."""
    frame.columns = [str(column).strip().upper() for column in frame.columns]
    return frame


class DelimitedStudyTableSource(StudyTableSource):
    """
    Reads ImmPort tables from a tab-delimited release directory (one <table>.txt per table).

    Attributes:
        study_dir (str): Directory holding the release files.
        extension (str): File extension of every table file.
        logger (logging.Logger): Logger instance for debug and info output.
    """

    def __init__(self, study_dir: str, extension: str = ".txt", debug: bool = False) -> None:
        # Validate that the study directory exists
        if not study_dir or not os.path.isdir(study_dir):
            raise ValueError(f"Invalid study directory: {study_dir}")

        self.study_dir = study_dir
        self.extension = extension
        self.logger = configure_logger(
            name="DelimitedStudyTableSource",
            log_file="immport_table_source.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

    def read_table(self, table_name: str) -> pd.DataFrame:
        """
        Reads <study_dir>/<table_name><extension> with every column as text.

        Args:
            table_name (str): ImmPort table name.

        Returns:
            pd.DataFrame: The table with normalised column names.

        Raises:
            MissingStudyTableError: If the file does not exist or cannot be parsed.
        """
        path = os.path.join(self.study_dir, f"{table_name}{self.extension}")
        if not os.path.isfile(path):
            self.logger.error(f"Study table file not found: {path}")
            raise MissingStudyTableError(table_name)

        try:
            # Accessions must stay strings; ages are converted by the join engine
            frame = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=True)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            self.logger.error(f"Failed to parse study table {path}: {e}")
            raise MissingStudyTableError(table_name) from e

        self.logger.debug(f"Read {len(frame)} rows from {path}")
        return _normalize_columns(frame)


class SqlStudyTableSource(StudyTableSource):
    """
    Reads ImmPort tables from a relational database loaded from the MySQL release.

    Attributes:
        engine (Engine): SQLAlchemy engine bound to the release database.
        table_names (Dict[str, str]): Lower-case table name to the name stored in the database.
        logger (logging.Logger): Logger instance for debug and info output.
    """

    def __init__(self, engine: Optional[Engine] = None, database_url: Optional[str] = None, debug: bool = False) -> None:
        if engine is None and not database_url:
            raise ValueError("Either an engine or a database URL must be provided.")

        self.engine = engine or create_engine(database_url)
        self.logger = configure_logger(
            name="SqlStudyTableSource",
            log_file="immport_table_source.log",
            level=logging.DEBUG if debug else logging.INFO,
        )
        self._table_names: Optional[Dict[str, str]] = None

    @property
    def table_names(self) -> Dict[str, str]:
        # Release databases differ in table-name casing, so resolve names case-insensitively
        if self._table_names is None:
            try:
                names = inspect(self.engine).get_table_names()
            except SQLAlchemyError as e:
                self.logger.error(f"Failed to list tables: {e}")
                raise RuntimeError("Unable to inspect the study database.") from e
            self._table_names = {name.lower(): name for name in names}
        return self._table_names

    def read_table(self, table_name: str) -> pd.DataFrame:
        """
        Reads a whole table through pandas.

        Raises:
            MissingStudyTableError: If the table is absent or the query fails.
        """
        stored_name = self.table_names.get(table_name.lower())
        if stored_name is None:
            self.logger.error(f"Study table not found in database: {table_name}")
            raise MissingStudyTableError(table_name)

        try:
            frame = pd.read_sql_table(stored_name, self.engine)
        except (SQLAlchemyError, ValueError) as e:
            self.logger.error(f"Failed to read study table {stored_name}: {e}")
            raise MissingStudyTableError(table_name) from e

        self.logger.debug(f"Read {len(frame)} rows from table {stored_name}")
        return _normalize_columns(frame)
