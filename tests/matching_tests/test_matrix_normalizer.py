import pandas as pd
import pytest

from config.pipeline_config import PipelineSettings
from pipeline.matching.matrix_normalizer import MatrixNormalizer, make_unique, read_matrix
from utils.exceptions import UnresolvableIdentifierError


@pytest.fixture
def normalizer():
    return MatrixNormalizer(debug=True)


def test_gene_id_column_chosen_regardless_of_position(normalizer):
    """Ensembl IDs win over an earlier symbol column; Length is dropped."""
    raw = pd.DataFrame({
        "Symbol": ["TP53", "BRCA1"],
        "Geneid": ["ENSG00000141510", "ENSG00000012048.21"],
        "Length": [2512, 7088],
        "S1": [10, 20],
        "S2": [30, 40],
    })
    canonical = normalizer.normalize(raw)

    assert canonical.index.name == "Geneid"
    assert list(canonical.index) == ["ENSG00000141510", "ENSG00000012048.21"]
    assert list(canonical.columns) == ["S1", "S2"]


def test_mouse_gene_ids_match(normalizer):
    raw = pd.DataFrame({"name": ["Trp53", "Actb"], "id": ["ENSMUSG00000059552", "ENSMUSG00000029580"], "S1": [1, 2]})
    assert normalizer.normalize(raw).index.name == "id"


def test_single_text_column_promoted(normalizer):
    raw = pd.DataFrame({"feature": ["a", "b"], "S1": [1, 2], "S2": [3, 4]})
    canonical = normalizer.normalize(raw)
    assert canonical.index.name == "feature"
    assert list(canonical.columns) == ["S1", "S2"]


def test_all_numeric_keeps_index(normalizer):
    raw = pd.DataFrame({"S1": [1, 2], "Length": [100, 200]}, index=["g1", "g2"])
    canonical = normalizer.normalize(raw)
    assert list(canonical.index) == ["g1", "g2"]
    assert list(canonical.columns) == ["S1"]


def test_symbol_column_made_unique(normalizer):
    """Duplicate symbols are suffixed instead of dropped."""
    raw = pd.DataFrame({
        "description": ["x", "y", "z"],
        "gene_name": ["MT-ND1", "MT-ND1", "ACTB"],
        "S1": [1, 2, 3],
    })
    canonical = normalizer.normalize(raw)
    assert list(canonical.index) == ["MT-ND1", "MT-ND1.1", "ACTB"]
    assert canonical.index.is_unique
    assert list(canonical["S1"]) == [1, 2, 3]


def test_unresolvable_identifier(normalizer):
    raw = pd.DataFrame({"chrom": ["1", "2"], "strand": ["+", "-"], "S1": [1, 2]})
    with pytest.raises(UnresolvableIdentifierError) as excinfo:
        normalizer.normalize(raw, source="counts.tsv")
    assert excinfo.value.candidate_columns == ["chrom", "strand"]
    assert "counts.tsv" in str(excinfo.value)


def test_make_unique_avoids_existing_values():
    assert make_unique(["A", "A", "A.1"]) == ["A", "A.2", "A.1"]
    assert make_unique(["B", "C"]) == ["B", "C"]


def test_read_matrix_formats(tmp_path):
    csv_path = tmp_path / "counts.csv"
    csv_path.write_text("Geneid,S1\nENSG1,5\n")
    tsv_path = tmp_path / "counts.tsv.gz"
    pd.DataFrame({"Geneid": ["ENSG1"], "S1": [5]}).to_csv(tsv_path, sep="\t", index=False, compression="gzip")

    assert read_matrix(str(csv_path))["S1"].tolist() == [5]
    assert list(read_matrix(str(tsv_path)).columns) == ["Geneid", "S1"]


def test_read_matrix_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_matrix(str(tmp_path / "absent.csv"))
    other = tmp_path / "counts.xlsx"
    other.write_text("")
    with pytest.raises(ValueError):
        read_matrix(str(other))


def test_from_settings_uses_configured_heuristics():
    settings = PipelineSettings(symbol_vocabulary=["Name"], excluded_numeric_columns=["Length", "EffLength"])
    normalizer = MatrixNormalizer.from_settings(settings)
    raw = pd.DataFrame({
        "chrom": ["1", "1"],
        "transcript_name": ["A", "A"],
        "EffLength": [1.5, 2.5],
        "S1": [1, 2],
    })
    canonical = normalizer.normalize(raw)
    assert list(canonical.index) == ["A", "A.1"]
    assert list(canonical.columns) == ["S1"]
