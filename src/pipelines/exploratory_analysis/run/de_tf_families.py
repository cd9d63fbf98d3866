"""
Script to explore differential expression results, RNA-seq counts and transcription
factor families.

The script performs the following steps for every combination of significance column,
significance threshold, LFC level and LFC threshold:
1. Annotates and filters differential expression results, saving differentially
   expressed genes (DEGs), top genes, volcano and MA plots, and an interactive volcano
   plot with a significance threshold slider.
2. Reshapes and summarizes the counts matrix (long format, library sizes, per
   condition summaries, log2 CPM), plotting count distributions, a sample PCA and a
   heatmap of the DEGs.
3. Joins DEGs with TF family membership, summarizes DEGs per family and tests each
   family (and TFs as a whole) for over-representation among DEGs.

Usage:
    python de_tf_families.py --de-file DE_FILE --counts-file COUNTS_FILE
        --families-file FAMILIES_FILE [--annot-file ANNOT_FILE] [--root-dir ROOT_DIR]
        [--exp-prefix EXP_PREFIX] [--p-ths P_TH ...] [--lfc-ths LFC_TH ...]
        [--conditions CONDITION ...] [--goi GENE_ID ...] [--method {fisher,chi2}]
        [--plots-format {pdf,png,svg,html}] [--threads NUM_THREADS]

Arguments:
    --de-file: Differential expression results (CSV/TSV, first column gene IDs)
    --counts-file: Raw counts matrix (CSV/TSV, genes as rows, samples as columns)
    --families-file: TF family membership (CSV/TSV with gene_id and family columns)
    --annot-file: Optional samples annotation, derived from sample names otherwise
    --root-dir: Root directory for results (default: ./exploratory_analysis)
    --p-ths, --lfc-ths: Significance and absolute LFC thresholds to combine
    --conditions: Conditions whose samples are kept (default: all)
    --goi: Genes of interest whose expression across samples is plotted
    --method: Contingency table test, Fisher's exact or chi-square (default: fisher)
    --threads: Number of processes for parallel processing (default: CPU count - 2)
"""

import argparse
import functools
import logging
import multiprocessing
import warnings
from itertools import product
from multiprocessing import freeze_support
from pathlib import Path
from typing import Dict, Iterable

from rich import traceback
from tqdm.rich import tqdm

from data.io import (
    load_counts,
    load_de_results,
    load_samples_annotation,
    load_tf_families,
)
from data.utils import parallelize_map
from pipelines.exploratory_analysis.utils import exploratory_analysis
from utils import run_func_dict

_ = traceback.install()
logging.basicConfig(force=True)
logging.getLogger().setLevel(logging.WARNING)
warnings.filterwarnings("ignore")

parser = argparse.ArgumentParser()
parser.add_argument(
    "--de-file", type=str, help="Differential expression results", required=True
)
parser.add_argument("--counts-file", type=str, help="Raw counts matrix", required=True)
parser.add_argument(
    "--families-file", type=str, help="TF family membership", required=True
)
parser.add_argument(
    "--annot-file", type=str, help="Samples annotation", nargs="?", default=None
)
parser.add_argument(
    "--root-dir",
    type=str,
    help="Root directory",
    nargs="?",
    default="exploratory_analysis",
)
parser.add_argument(
    "--exp-prefix", type=str, help="Prefix of output files", nargs="?", default="de"
)
parser.add_argument(
    "--p-ths",
    type=float,
    help="Significance thresholds",
    nargs="+",
    default=[0.05],
)
parser.add_argument(
    "--lfc-ths",
    type=float,
    help="Absolute log2 fold change thresholds",
    nargs="+",
    default=[0.0, 1.0],
)
parser.add_argument(
    "--conditions",
    type=str,
    help="Conditions to keep, all by default",
    nargs="+",
    default=None,
)
parser.add_argument(
    "--goi",
    type=str,
    help="Genes of interest whose expression is plotted",
    nargs="*",
    default=[],
)
parser.add_argument(
    "--method",
    type=str,
    help="Contingency table test",
    choices=("fisher", "chi2"),
    default="fisher",
)
parser.add_argument(
    "--plots-format",
    type=str,
    help="Extension of generated plots",
    choices=("pdf", "png", "svg", "html"),
    default="pdf",
)
parser.add_argument(
    "--threads",
    type=int,
    help="Number of threads for parallel processing",
    nargs="?",
    default=max(multiprocessing.cpu_count() - 2, 1),
)

user_args = vars(parser.parse_args())
ROOT_PATH: Path = Path(user_args["root_dir"])
ROOT_PATH.mkdir(exist_ok=True, parents=True)
EXP_PREFIX: str = user_args["exp_prefix"]
P_COLS: Iterable[str] = ["padj"]
P_THS: Iterable[float] = tuple(user_args["p_ths"])
LFC_LEVELS: Iterable[str] = ("all", "up", "down")
LFC_THS: Iterable[float] = tuple(user_args["lfc_ths"])
METHOD: str = user_args["method"]
ALTERNATIVE: str = "greater"
MIN_FAMILY_SIZE: int = 3
TOP_N: int = 20
HEATMAP_TOP_N: int = 50
CONDITION_COLORS: Dict[str, str] = {
    "control": "#4A708B",
    "treated": "#8B3A3A",
}
PARALLEL: bool = True

de_df = load_de_results(Path(user_args["de_file"]))
counts_df = load_counts(Path(user_args["counts_file"]))
families_df = load_tf_families(Path(user_args["families_file"]))
annot_df = load_samples_annotation(
    Path(user_args["annot_file"]) if user_args["annot_file"] else None,
    samples=counts_df.columns,
)

# unknown conditions fall back to plotly/seaborn palettes
sample_colors = (
    CONDITION_COLORS
    if set(annot_df["condition"]).issubset(CONDITION_COLORS)
    else None
)

input_collection = []
for p_col, p_th, lfc_level, lfc_th in product(P_COLS, P_THS, LFC_LEVELS, LFC_THS):
    input_collection.append(
        dict(
            de_df=de_df,
            counts_df=counts_df,
            annot_df=annot_df,
            families_df=families_df,
            root_path=ROOT_PATH,
            exp_prefix=EXP_PREFIX,
            p_col=p_col,
            p_th=p_th,
            lfc_level=lfc_level,
            lfc_th=lfc_th,
            method=METHOD,
            alternative=ALTERNATIVE,
            min_family_size=MIN_FAMILY_SIZE,
            top_n=TOP_N,
            heatmap_top_n=HEATMAP_TOP_N,
            conditions=user_args["conditions"],
            genes_of_interest=user_args["goi"],
            sample_colors=sample_colors,
            plots_format=user_args["plots_format"],
        )
    )

# Run exploratory analyses
if __name__ == "__main__":
    freeze_support()
    if PARALLEL and len(input_collection) > 1:
        parallelize_map(
            functools.partial(run_func_dict, func=exploratory_analysis),
            input_collection,
            processes=min(user_args["threads"], len(input_collection)),
        )
    else:
        for ins in tqdm(input_collection):
            exploratory_analysis(**ins)
