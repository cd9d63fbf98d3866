import pandas as pd
import pytest

from data.io import (
    get_separator,
    load_counts,
    load_de_results,
    load_samples_annotation,
    load_tf_families,
    read_table,
    save_table,
)


@pytest.mark.parametrize(
    "file_name, sep",
    [
        ("results.csv", ","),
        ("counts.tsv", "\t"),
        ("counts.txt", "\t"),
        ("families.tab", "\t"),
        ("counts.tsv.gz", "\t"),
        ("results.CSV", ","),
    ],
)
def test_get_separator(tmp_path, file_name, sep):
    assert get_separator(tmp_path.joinpath(file_name)) == sep


def test_get_separator_unknown_suffix(tmp_path):
    with pytest.raises(ValueError):
        get_separator(tmp_path.joinpath("results.xlsx"))


def test_save_and_read_gzipped_table(tmp_path, counts_df):
    save_path = tmp_path.joinpath("nested", "counts.tsv.gz")
    save_table(counts_df, save_path)

    assert save_path.exists()
    pd.testing.assert_frame_equal(read_table(save_path, index_col=0), counts_df)


def test_load_de_results(tmp_path):
    file_path = tmp_path.joinpath("de.tsv")
    file_path.write_text(
        "gene\tbaseMean\tlog2FoldChange\tpvalue\tpadj\n"
        "AT1G01010\t10.5\t1.2\t0.001\t0.01\n"
        "AT1G01020\t0\tNA\tNA\tNA\n"
        "AT1G01010\t99\t-4\t0.5\t0.9\n"
    )

    de_df = load_de_results(file_path)

    assert de_df.index.name == "gene_id"
    assert list(de_df.index) == ["AT1G01010", "AT1G01020"]
    assert de_df.loc["AT1G01010", "baseMean"] == 10.5
    assert pd.isna(de_df.loc["AT1G01020", "padj"])


def test_load_de_results_gene_column(tmp_path, de_df):
    file_path = tmp_path.joinpath("de.csv")
    de_df.reset_index().rename(columns={"gene_id": "locus"}).assign(
        symbol="x"
    ).to_csv(file_path, index=False)

    loaded_df = load_de_results(file_path, gene_col="locus")

    assert list(loaded_df.index) == list(de_df.index)
    assert "symbol" in loaded_df.columns


def test_load_de_results_missing_columns(tmp_path):
    file_path = tmp_path.joinpath("de.csv")
    file_path.write_text("gene,baseMean,log2FoldChange\ng1,1,2\n")

    with pytest.raises(AssertionError, match="missing columns"):
        load_de_results(file_path)


def test_load_counts(tmp_path, counts_df):
    file_path = tmp_path.joinpath("counts.csv")
    counts_df.to_csv(file_path)

    loaded_df = load_counts(file_path)

    assert loaded_df.index.name == "gene_id"
    assert list(loaded_df.columns) == list(counts_df.columns)
    assert loaded_df.to_numpy().sum() == counts_df.to_numpy().sum()


def test_load_counts_drops_empty_genes(tmp_path):
    file_path = tmp_path.joinpath("counts.csv")
    file_path.write_text("gene,s1,s2\ng1,1,2\ng2,,\ng3,4,\n")

    loaded_df = load_counts(file_path)

    assert list(loaded_df.index) == ["g1", "g3"]
    assert pd.isna(loaded_df.loc["g3", "s2"])


def test_load_counts_negative(tmp_path):
    file_path = tmp_path.joinpath("counts.csv")
    file_path.write_text("gene,s1,s2\ng1,1,-2\n")

    with pytest.raises(AssertionError, match="negative"):
        load_counts(file_path)


def test_load_counts_non_numeric(tmp_path):
    file_path = tmp_path.joinpath("counts.csv")
    file_path.write_text("gene,s1,s2\ng1,1,a\n")

    with pytest.raises(AssertionError, match="non-numeric"):
        load_counts(file_path)


def test_load_tf_families(tmp_path):
    file_path = tmp_path.joinpath("families.tsv")
    file_path.write_text(
        "Gene_ID\tFamily\n"
        "AT1G01010 \tNAC\n"
        "AT1G01010\tNAC\n"
        "AT1G01060\tMYB\n"
        "AT1G01060\tMYB-related\n"
        "AT1G01250\t\n"
    )

    families_df = load_tf_families(file_path, gene_col="Gene_ID", family_col="Family")

    assert list(families_df.columns) == ["gene_id", "family"]
    assert families_df.values.tolist() == [
        ["AT1G01010", "NAC"],
        ["AT1G01060", "MYB"],
        ["AT1G01060", "MYB-related"],
    ]


def test_load_samples_annotation_from_names():
    annot_df = load_samples_annotation(samples=["control_1", "heat_stress_2", "pool"])

    assert annot_df.index.name == "sample"
    assert annot_df["condition"].tolist() == ["control", "heat_stress", "pool"]
    assert annot_df["replicate"].tolist() == ["1", "2", "1"]


def test_load_samples_annotation_from_file(tmp_path):
    file_path = tmp_path.joinpath("samples.csv")
    file_path.write_text("sample,condition,batch\ns1,control,a\ns2,treated,b\n")

    annot_df = load_samples_annotation(file_path)

    assert list(annot_df.index) == ["s1", "s2"]
    assert annot_df.loc["s2", "condition"] == "treated"


def test_load_samples_annotation_without_condition(tmp_path):
    file_path = tmp_path.joinpath("samples.csv")
    file_path.write_text("sample,batch\ns1,a\n")

    with pytest.raises(AssertionError):
        load_samples_annotation(file_path)
