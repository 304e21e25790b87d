# File: pipeline/reconciliation/records.py
# Record shapes shared by every reconciliation stage.

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# ---------------- SampleRecord columns ----------------
# Identity columns produced by the ImmPort join
SUBJECT_ACCESSION = "SUBJECT_ACCESSION"
BIOSAMPLE_ACCESSION = "BIOSAMPLE_ACCESSION"
EXPSAMPLE_ACCESSION = "EXPSAMPLE_ACCESSION"
EXPERIMENT_ACCESSION = "EXPERIMENT_ACCESSION"
REPOSITORY_ACCESSION = "REPOSITORY_ACCESSION"
GENDER = "GENDER"
MIN_SUBJECT_AGE = "MIN_SUBJECT_AGE"
MAX_SUBJECT_AGE = "MAX_SUBJECT_AGE"
AGE_UNIT = "AGE_UNIT"

JOIN_COLUMNS = [
    SUBJECT_ACCESSION,
    BIOSAMPLE_ACCESSION,
    EXPSAMPLE_ACCESSION,
    EXPERIMENT_ACCESSION,
    REPOSITORY_ACCESSION,
    GENDER,
    MIN_SUBJECT_AGE,
    MAX_SUBJECT_AGE,
    AGE_UNIT,
]

# Enrichment columns added by the series metadata and file mapping passes
SERIES_ID = "series_id"
TITLE = "title"
DESCRIPTION = "description"
PLATFORM_ID = "platform_id"
READ_FILE_COLUMNS = ["R1_file", "R2_file", "R3_file"]

SERIES_METADATA_COLUMNS = [SERIES_ID, TITLE, DESCRIPTION, PLATFORM_ID]
ENRICHMENT_COLUMNS = SERIES_METADATA_COLUMNS + READ_FILE_COLUMNS
SAMPLE_RECORD_COLUMNS = JOIN_COLUMNS + ENRICHMENT_COLUMNS

MAX_READ_FILES = len(READ_FILE_COLUMNS)
# Separator between filenames of different runs sharing one slot
RUN_FILENAME_SEPARATOR = ";"


# ---------------- Pydantic Models ----------------
class SeriesRelation(BaseModel):
    """
    Relation metadata of a GEO series as returned by a SampleMetadataLookup.

    Attributes:
        relation_text: First relation line (e.g. "SuperSeries of: GSE1"), if any.
        overall_design: Free-text design summary, if any.
    """
    relation_text: Optional[str] = None
    overall_design: Optional[str] = None


class SeriesRecord(BaseModel):
    """
    A GEO series after superseries classification.
    """
    series_id: str
    is_superseries: bool = False
    overall_design: Optional[str] = None


class LookupFailure(BaseModel):
    """
    A per-item lookup failure, reported with the rest of its batch at the end of a run.
    """
    stage: str
    item: str
    message: str


class RunAccession(BaseModel):
    """
    One SRA run linked to a GEO sample, with the read file names it is expected to emit.

    Attributes:
        run_id: SRA run accession (e.g. SRR1234567).
        parent_sample_accession: GEO sample the run belongs to.
        read_file_count: Number of read files declared by SRA, between 1 and 3.
    """
    run_id: str
    parent_sample_accession: str
    read_file_count: int = Field(ge=1, le=MAX_READ_FILES)

    @field_validator("run_id")
    @classmethod
    def _check_run_id(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("run_id must be a non-empty string.")
        return value.strip()

    @property
    def inferred_filenames(self) -> List[str]:
        """File names follow {run_id}_{n}; the download layer reverses this rule."""
        return [f"{self.run_id}_{n}" for n in range(1, self.read_file_count + 1)]
