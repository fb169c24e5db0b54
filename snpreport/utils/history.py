import textwrap
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable

import pandas as pd

if TYPE_CHECKING:
    from snpreport.read_input.genotype_matrix import GenotypeMatrix


@dataclass(frozen=True)
class HistoryRecord:
    """One step applied to a genotype matrix.

    Attributes:
        step (int): 1-based position of the step in the history.
        method (str): Name of the operation that produced the matrix.
        params (Dict[str, Any]): Parameters the operation was called with.
        n_ind_before (int): Individuals before the step.
        n_ind_after (int): Individuals after the step.
        n_loci_before (int): Loci before the step.
        n_loci_after (int): Loci after the step.
    """

    step: int
    method: str
    params: Dict[str, Any] = field(default_factory=dict)
    n_ind_before: int = 0
    n_ind_after: int = 0
    n_loci_before: int = 0
    n_loci_after: int = 0

    def call_string(self) -> str:
        """Render the step as a call, e.g. ``filter_maf(threshold=0.05)``."""
        args = ", ".join(f"{k}={v!r}" for k, v in self.params.items())
        return f"{self.method}({args})"


def history_table(
    history: "GenotypeMatrix | Iterable[HistoryRecord]",
    steps: Iterable[int] | None = None,
    width: int = 80,
) -> pd.DataFrame:
    """Tabulate the history of a genotype matrix.

    Args:
        history (GenotypeMatrix | Iterable[HistoryRecord]): A matrix (its ``history`` is used) or the records themselves.
        steps (Iterable[int] | None): 1-based steps to keep. All steps if None.
        width (int): Wrap width for the rendered calls.

    Returns:
        pd.DataFrame: One row per step with the call and the loci/individual counts before and after it. Empty when there is no history.
    """
    records = list(getattr(history, "history", history))

    if steps is not None:
        wanted = set(steps)
        records = [r for r in records if r.step in wanted]

    rows = [
        {
            "nr": r.step,
            "history": "\n".join(textwrap.wrap(r.call_string(), width=width)),
            "n_ind_before": r.n_ind_before,
            "n_ind_after": r.n_ind_after,
            "n_loci_before": r.n_loci_before,
            "n_loci_after": r.n_loci_after,
        }
        for r in records
    ]

    return pd.DataFrame(
        rows,
        columns=[
            "nr",
            "history",
            "n_ind_before",
            "n_ind_after",
            "n_loci_before",
            "n_loci_after",
        ],
    )
