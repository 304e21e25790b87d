# File: utils/exceptions.py
# Exception taxonomy for the reconciliation pipeline.
# Fatal errors abort a run; SourceLookupError is collected per item and reported at batch end.

from typing import Optional


class ReconciliationError(Exception):
    """
    Base class for all errors raised by the reconciliation pipeline.
    """


class NoRepositoryDataError(ReconciliationError):
    """
    Raised when the repository-link table is empty, leaving nothing to reconcile.
    """
    def __init__(self, table_name: str, study_accession: Optional[str] = None):
        self.table_name = table_name
        self.study_accession = study_accession
        scope = f" for study {study_accession}" if study_accession else ""
        message = f"Table '{table_name}' holds no public repository records{scope}."
        super().__init__(message)


class MissingStudyTableError(ReconciliationError):
    """
    Raised when a required study-metadata table or one of its key columns is missing.
    """
    def __init__(self, table_name: str, missing_columns=None):
        self.table_name = table_name
        self.missing_columns = list(missing_columns or [])
        if self.missing_columns:
            message = f"Study table '{table_name}' is missing required columns: {self.missing_columns}"
        else:
            message = f"Study table '{table_name}' could not be read."
        super().__init__(message)


class UnresolvableIdentifierError(ReconciliationError):
    """
    Raised when no identifier column can be chosen from a count matrix.
    """
    def __init__(self, candidate_columns, source: Optional[str] = None):
        self.candidate_columns = list(candidate_columns)
        self.source = source
        origin = f" in {source}" if source else ""
        message = f"Cannot choose an identifier column{origin} among non-numeric columns: {self.candidate_columns}"
        super().__init__(message)


class SourceLookupError(ReconciliationError):
    """
    Raised when an external metadata service keeps failing after all retry attempts.
    """
    def __init__(self, operation: str, item: str, attempts: int, cause: Optional[BaseException] = None):
        self.operation = operation
        self.item = item
        self.attempts = attempts
        self.cause = cause
        message = f"{operation} failed for {item} after {attempts} attempt(s): {cause}"
        super().__init__(message)
