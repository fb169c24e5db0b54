import warnings
from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

import snpreport.utils.custom_exceptions as exceptions
from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.logging import LoggerManager

PERLOC_COLUMNS = [
    "Ho",
    "Hs",
    "Ht",
    "Dst",
    "Htp",
    "Dstp",
    "Fst",
    "Fstp",
    "Fis",
    "Dest",
    "Gst_max",
    "Gst_H",
]


@dataclass(frozen=True)
class BasicStatsResult:
    """Result of :meth:`BasicStatistics.calculate`.

    Attributes:
        Ho (pd.DataFrame): Observed heterozygosity (loci x populations).
        Hs (pd.DataFrame): Within-population gene diversity (loci x populations).
        Fis (pd.DataFrame): Per-population inbreeding coefficient (loci x populations).
        perloc (pd.DataFrame): Per-locus statistics (loci x statistics).
        overall (pd.Series): Overall value of each statistic.
        n_pop (pd.Series): Number of populations with data at each locus.
    """

    Ho: pd.DataFrame
    Hs: pd.DataFrame
    Fis: pd.DataFrame
    perloc: pd.DataFrame
    overall: pd.Series
    n_pop: pd.Series


def _safe_divide(num, den) -> np.ndarray:
    """Elementwise ``num / den`` with NaN wherever the denominator is zero or NaN."""
    num, den = np.broadcast_arrays(
        np.asarray(num, dtype=float), np.asarray(den, dtype=float)
    )
    out = np.full(num.shape, np.nan, dtype=float)
    valid = np.isfinite(den) & (den != 0)
    np.divide(num, den, out=out, where=valid)
    return out


class BasicStatistics:
    """Heterozygosity, gene diversity and differentiation statistics (Nei 1987).

    A re-implementation of ``hierfstat::basic.stats`` for dosage matrices, using Nei's (1987) corrected total diversity. Every statistic is computed per locus; the overall values are the means over loci with the ratio statistics recomputed from the means.

    Notes:
        - All individuals are treated as diploid, so only SNP data is supported.
        - Every population must contain at least two individuals.
        - Divisions by zero give NaN rather than an error or infinity.
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize the BasicStatistics object.

        Args:
            genotype_matrix (GenotypeMatrix): Matrix with SNP dosages and population assignments.
            verbose (bool): If True, enable verbose logging.
            debug (bool): If True, enable debug logging.
        """
        self.genotype_matrix = genotype_matrix
        self.verbose = verbose

        logman = LoggerManager(
            __name__, prefix="snpreport", debug=debug, verbose=verbose
        )
        self.logger = logman.get_logger()

    def _validate(self) -> None:
        gm = self.genotype_matrix

        if gm.datatype != "SNP":
            msg = f"Basic statistics require SNP data, but got: {gm.datatype}"
            self.logger.error(msg)
            raise exceptions.UnsupportedDataTypeError(gm.datatype, ["SNP"])

        sizes = gm.partition.sizes()
        small = sizes[sizes <= 1].index.tolist()
        if small:
            msg = f"Populations with one individual found: {', '.join(small)}"
            self.logger.error(msg)
            raise exceptions.InsufficientSamplesError(small)

    def calculate(self) -> BasicStatsResult:
        """Calculate Ho, Hs, Ht, Dst, Htp, Dstp, Fst, Fstp, Fis, Dest, Gst_max and Gst_H.

        Returns:
            BasicStatsResult: Per-population tables, the per-locus table and the overall values, all rounded to 4 decimals.

        Raises:
            UnsupportedDataTypeError: If the matrix does not hold SNP data.
            InsufficientSamplesError: If a population has fewer than two individuals.
        """
        self._validate()

        gm = self.genotype_matrix
        part = gm.partition
        pops = part.labels
        k = len(pops)

        self.logger.info(
            f"Calculating basic statistics for {gm.n_loci} loci and {k} populations."
        )

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=RuntimeWarning)
            stats = self._per_locus([gm.population_matrix(p) for p in pops])

        loci = gm.loci
        Ho = pd.DataFrame(stats.pop("Ho_pop"), index=loci, columns=pops)
        Hs = pd.DataFrame(stats.pop("Hs_pop"), index=loci, columns=pops)
        Fis = pd.DataFrame(stats.pop("Fis_pop"), index=loci, columns=pops)
        n_pop = pd.Series(stats.pop("n_pop"), index=loci, name="n_pop")

        perloc = pd.DataFrame(stats, index=loci)[PERLOC_COLUMNS]
        overall = self._overall(perloc, n_pop)

        return BasicStatsResult(
            Ho=Ho.round(4),
            Hs=Hs.round(4),
            Fis=Fis.round(4),
            perloc=perloc.round(4),
            overall=overall.round(4),
            n_pop=n_pop,
        )

    @staticmethod
    def _per_locus(groups: List[np.ndarray]) -> dict:
        n_cols, q_cols, ho_cols = [], [], []
        for sub in groups:
            n = np.sum(~np.isnan(sub), axis=0).astype(float)
            n_cols.append(n)
            q_cols.append(_safe_divide(np.nansum(sub, axis=0), 2.0 * n))
            ho_cols.append(_safe_divide(np.sum(sub == 1, axis=0), n))

        n = np.column_stack(n_cols)
        q = np.column_stack(q_cols)
        Ho = np.column_stack(ho_cols)
        k = n.shape[1]

        Hs = _safe_divide(n, n - 1) * (2.0 * q * (1.0 - q) - _safe_divide(Ho, 2.0 * n))

        if k > 1:
            # Harmonic mean; a population with no data drives it to zero.
            inv_n = _safe_divide(1.0, n)
            mn = np.where(np.any(n == 0, axis=1), 0.0, k / np.sum(inv_n, axis=1))
        else:
            mn = n[:, 0]

        mHo = np.nanmean(Ho, axis=1)
        msp2 = np.nanmean(q**2 + (1.0 - q) ** 2, axis=1)
        mHs = _safe_divide(mn, mn - 1) * (1.0 - msp2 - _safe_divide(mHo, 2.0 * mn))

        n_pop = k - np.sum(n == 0, axis=1)
        q_mean = np.nanmean(q, axis=1)

        Ht = 2.0 * (1.0 - q_mean) * q_mean
        Htp = Ht + _safe_divide(mHs, mn) - _safe_divide(mHo, 2.0 * mn * n_pop)
        Dstp = _safe_divide(n_pop * (Htp - mHs), n_pop - 1)
        Dst = Ht - mHs

        Fst = _safe_divide(Dst, Ht)
        Gst_max = _safe_divide((n_pop - 1) * (1.0 - mHs), n_pop - 1 + mHs)
        Fstp = _safe_divide(Dstp, Htp)
        Gst_H = _safe_divide(Fstp, Gst_max)
        Dest = _safe_divide(Htp - mHs, 1.0 - mHs) * _safe_divide(n_pop, n_pop - 1)

        # (Hs/Ho)/Hs reduces to 1/Ho; the per-locus Fis is 1 - Ho/Hs.
        Fis_pop = _safe_divide(_safe_divide(Hs, Ho), Hs)
        mFis = 1.0 - _safe_divide(mHo, mHs)

        return {
            "Ho_pop": Ho,
            "Hs_pop": Hs,
            "Fis_pop": Fis_pop,
            "n_pop": n_pop.astype(int),
            "Ho": mHo,
            "Hs": mHs,
            "Ht": Ht,
            "Dst": Dst,
            "Htp": Htp,
            "Dstp": Dstp,
            "Fst": Fst,
            "Fstp": Fstp,
            "Fis": mFis,
            "Dest": Dest,
            "Gst_max": Gst_max,
            "Gst_H": Gst_H,
        }

    @staticmethod
    def _overall(perloc: pd.DataFrame, n_pop: pd.Series) -> pd.Series:
        overall = perloc.mean(axis=0, skipna=True)
        mean_npop = float(n_pop.mean())

        def ratio(num, den):
            return float(_safe_divide(num, den))

        overall["Fst"] = ratio(overall["Dst"], overall["Ht"])
        overall["Fis"] = 1.0 - ratio(overall["Ho"], overall["Hs"])
        overall["Dest"] = ratio(overall["Dstp"], 1.0 - overall["Hs"]) * ratio(
            mean_npop, mean_npop - 1.0
        )
        overall["Fstp"] = ratio(overall["Dstp"], overall["Htp"])
        overall["Gst_H"] = ratio(overall["Fstp"], overall["Gst_max"])
        overall.name = "overall"
        return overall
