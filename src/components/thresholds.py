from pydantic import ConfigDict
from pydantic.dataclasses import dataclass

from data.tidy import LFC_LEVELS

P_COLS = ("padj", "pvalue")

Config = ConfigDict(arbitrary_types_allowed=True)


@dataclass(config=Config)
class DEThresholds:
    """Thresholds used to call differentially expressed genes.

    Args:
        p_col: Column with the significance values, "padj" or "pvalue".
        p_th: Genes with ``p_col`` strictly below this value are significant.
        lfc_level: "all", "up" (LFC > 0) or "down" (LFC < 0).
        lfc_th: Genes with absolute LFC strictly above this value are kept.
    """

    p_col: str = "padj"
    p_th: float = 0.05
    lfc_level: str = "all"
    lfc_th: float = 0.0

    def __post_init__(self) -> None:
        if self.p_col not in P_COLS:
            raise ValueError(f"{self.p_col} is not a valid option, choose one of {P_COLS}.")
        if not 0 < self.p_th <= 1:
            raise ValueError(f"p_th must be in (0, 1], got {self.p_th}.")
        if self.lfc_level not in LFC_LEVELS:
            raise ValueError(
                f"{self.lfc_level} is not a valid option, choose one of {LFC_LEVELS}."
            )
        if self.lfc_th < 0:
            raise ValueError(f"lfc_th must be non-negative, got {self.lfc_th}.")

    @property
    def key(self) -> str:
        """Identifier of this threshold combination, used in file names."""
        p_th_str = str(self.p_th).replace(".", "_")
        lfc_th_str = str(self.lfc_th).replace(".", "_")
        return f"{self.p_col}_{p_th_str}_{self.lfc_level}_{lfc_th_str}"

    def as_dict(self) -> dict:
        return dict(
            p_col=self.p_col,
            p_th=self.p_th,
            lfc_level=self.lfc_level,
            lfc_th=self.lfc_th,
        )
