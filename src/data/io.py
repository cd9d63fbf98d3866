"""Readers and writers for the delimited tables used in the exploratory analyses.

Three kinds of tables are supported, all normalised to tidy conventions:
- Differential expression results, one row per gene indexed by ``gene_id``.
- RNA-seq raw counts, genes as rows (``gene_id``) and samples as columns.
- Transcription factor family membership, one ``gene_id``/``family`` pair per row.

A sample annotation table (indexed by ``sample``) can be read from a file or derived
from sample names of the form ``<condition>_<replicate>``.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

DE_REQUIRED_COLS = ("baseMean", "log2FoldChange", "pvalue", "padj")
DE_NUMERIC_COLS = ("baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj")
SEPARATORS = {".csv": ",", ".tsv": "\t", ".tab": "\t", ".txt": "\t"}


def get_separator(file_path: Path) -> str:
    """Get the column separator implied by the file extension.

    A trailing ``.gz`` is ignored, so ``counts.tsv.gz`` is read as a TSV file.

    Args:
        file_path: Path of a delimited text file.

    Returns:
        str: Column separator.

    Raises:
        ValueError: If the extension is not a supported delimited text format.
    """
    file_path = Path(file_path)
    suffix = (
        Path(file_path.stem).suffix if file_path.suffix == ".gz" else file_path.suffix
    )
    try:
        return SEPARATORS[suffix.lower()]
    except KeyError:
        raise ValueError(
            f"File {file_path.name} had suffix {suffix},"
            f" but only {', '.join(SEPARATORS)} (optionally gzipped) are possible."
        )


def read_table(file_path: Path, **kwargs) -> pd.DataFrame:
    """Read a delimited text file, choosing the separator from its extension.

    Args:
        file_path: Path of a .csv, .tsv, .tab or .txt file (optionally gzipped).
        **kwargs: Additional arguments passed to ``pd.read_csv``.

    Returns:
        pd.DataFrame: File contents.
    """
    return pd.read_csv(file_path, sep=get_separator(file_path), **kwargs)


def save_table(df: pd.DataFrame, save_path: Path, index: bool = True) -> None:
    """Write a dataframe using the separator implied by the file extension.

    Parent directories are created if needed.
    """
    save_path = Path(save_path)
    save_path.parent.mkdir(exist_ok=True, parents=True)
    df.to_csv(save_path, sep=get_separator(save_path), index=index)


def load_de_results(file_path: Path, gene_col: Optional[str] = None) -> pd.DataFrame:
    """Load differential expression results (e.g. a DESeq2 results table).

    Args:
        file_path: Path to the results table.
        gene_col: Column holding gene identifiers. If None, the first column is used.

    Returns:
        pd.DataFrame: Results indexed by ``gene_id`` with numeric statistics.

    Raises:
        AssertionError: If the table is empty or required columns are missing.
    """
    de_df = read_table(file_path)
    assert not de_df.empty, f"Differential expression file {file_path} is empty."

    gene_col = gene_col or de_df.columns[0]
    de_df = de_df.rename(columns={gene_col: "gene_id"}).set_index("gene_id")
    de_df.index = de_df.index.astype(str)

    missing_cols = [c for c in DE_REQUIRED_COLS if c not in de_df.columns]
    assert not missing_cols, (
        f"Differential expression file {file_path} is missing columns: {missing_cols}"
    )

    # 1. Statistics to numeric, unparseable values (e.g. "NA") become NaN
    for col in DE_NUMERIC_COLS:
        if col in de_df.columns:
            de_df[col] = pd.to_numeric(de_df[col], errors="coerce")

    # 2. One row per gene
    if de_df.index.has_duplicates:
        logging.warning(
            f"[{Path(file_path).name}] {de_df.index.duplicated().sum()} duplicated"
            " gene IDs found, only the first occurrence is kept."
        )
        de_df = de_df[~de_df.index.duplicated(keep="first")]

    return de_df


def load_counts(file_path: Path) -> pd.DataFrame:
    """Load a raw counts matrix with genes as rows and samples as columns.

    Args:
        file_path: Path to the counts table, first column must contain gene IDs.

    Returns:
        pd.DataFrame: Counts indexed by ``gene_id``.

    Raises:
        AssertionError: If the matrix is empty, has non-numeric or negative values.
    """
    counts_df = read_table(file_path, index_col=0)
    counts_df.index = counts_df.index.astype(str).rename("gene_id")
    counts_df.columns = counts_df.columns.astype(str)
    assert not counts_df.empty, f"Counts file {file_path} is empty."

    non_numeric = [
        c for c in counts_df.columns if not pd.api.types.is_numeric_dtype(counts_df[c])
    ]
    assert not non_numeric, (
        f"Counts file {file_path} contains non-numeric samples: {non_numeric}"
    )
    counts_df = counts_df.dropna(how="all")
    assert (counts_df.fillna(0) >= 0).all().all(), (
        f"Counts file {file_path} contains negative values."
    )

    return counts_df


def load_tf_families(
    file_path: Path, gene_col: str = "gene_id", family_col: str = "family"
) -> pd.DataFrame:
    """Load transcription factor family membership.

    Args:
        file_path: Path to the membership table.
        gene_col: Column holding gene identifiers.
        family_col: Column holding family names.

    Returns:
        pd.DataFrame: Unique ``gene_id``/``family`` pairs.
    """
    families_df = read_table(file_path, dtype=str)
    assert gene_col in families_df.columns and family_col in families_df.columns, (
        f"TF families file {file_path} must contain columns {gene_col} and"
        f" {family_col}."
    )

    families_df = families_df.rename(
        columns={gene_col: "gene_id", family_col: "family"}
    )[["gene_id", "family"]]
    families_df = families_df.apply(lambda col: col.str.strip())

    return families_df.dropna().drop_duplicates().reset_index(drop=True)


def load_samples_annotation(
    file_path: Optional[Path] = None, samples: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """Load or derive sample annotation.

    If a file is given, it is read with the first column as ``sample`` index and must
    contain a ``condition`` column. Otherwise, sample names are split on their last
    underscore into ``condition`` and ``replicate`` (e.g. "treated_2").

    Args:
        file_path: Optional annotation file.
        samples: Sample names used when no file is given.

    Returns:
        pd.DataFrame: Annotation indexed by ``sample``.
    """
    if file_path is not None:
        annot_df = read_table(file_path, index_col=0)
        annot_df.index = annot_df.index.astype(str).rename("sample")
        assert "condition" in annot_df.columns, (
            f"Samples annotation file {file_path} must contain a condition column."
        )
        return annot_df

    assert samples is not None, "Either an annotation file or sample names are needed."
    records = []
    for sample in samples:
        condition, sep, replicate = str(sample).rpartition("_")
        records.append(
            {
                "sample": str(sample),
                "condition": condition if sep else str(sample),
                "replicate": replicate if sep else "1",
            }
        )

    return pd.DataFrame(records, columns=["sample", "condition", "replicate"]).set_index(
        "sample"
    )
