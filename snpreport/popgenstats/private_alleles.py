from dataclasses import dataclass
from itertools import combinations
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

import snpreport.utils.custom_exceptions as exceptions
from snpreport.popgenstats.numba_helpers import (
    _column_frequencies,
    _execute_bootstrap_pa,
)
from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.containers import PrivateAlleleConfig
from snpreport.utils.logging import LoggerManager

TABLE_COLUMNS = [
    "pop1",
    "pop2",
    "N1",
    "N2",
    "fixed",
    "priv1",
    "priv2",
    "Chao1",
    "Chao2",
    "totalpriv",
    "AFD",
    "asym",
    "asym_sig",
]


@dataclass(frozen=True)
class PrivateAlleleResult:
    """Result of :meth:`PrivateAlleles.calculate`.

    Attributes:
        table (pd.DataFrame): One row per comparison.
        loc_names (Dict[str, Dict[str, List[str]]] | None): For each comparison ``"{pop1}_{pop2}"``, the loci behind ``priv1`` (``pop1_pop2_pa``), ``priv2`` (``pop2_pop1_pa``) and ``fixed`` (``fd``).
        matrix_pa (pd.DataFrame | None): Population x population matrix where cell (i, j) is the number of alleles private to j relative to i.
    """

    table: pd.DataFrame
    loc_names: Dict[str, Dict[str, List[str]]] | None = None
    matrix_pa: pd.DataFrame | None = None


def private_allele_masks(
    f1: np.ndarray, f2: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Classify loci as private to either population or fixed between them.

    Args:
        f1 (np.ndarray): Allele frequencies of population 1 (NaN where it has no data).
        f2 (np.ndarray): Allele frequencies of population 2.

    Returns:
        Tuple[np.ndarray, np.ndarray, np.ndarray]: Boolean masks of loci private to population 1, private to population 2, and fixed differences. Loci without data in either population are False in all three.
    """
    valid = ~np.isnan(f1) & ~np.isnan(f2)
    priv1 = valid & (((f2 == 0) & (f1 != 0)) | ((f2 == 1) & (f1 != 1)))
    priv2 = valid & (((f1 == 0) & (f2 != 0)) | ((f1 == 1) & (f2 != 1)))
    fixed = valid & (np.abs(f1 - f2) == 1)
    return priv1, priv2, fixed


def chao_undetected(
    genotypes: np.ndarray, private: np.ndarray, other_freq: np.ndarray
) -> float:
    """Lower-bound estimate of private alleles not detected in a population.

    Uses equation 2c of Chao et al. (2017): with ``f1`` and ``f2`` the number of private alleles seen once and twice among the ``n`` gene copies sampled,

    .. math::

        f_0 = \\frac{n - 1}{n} \\frac{f_1^2}{2 f_2} \\quad (f_2 > 0), \\qquad
        f_0 = \\frac{n - 1}{n} \\frac{f_1 (f_1 - 1)}{2} \\quad (f_2 = 0)

    Args:
        genotypes (np.ndarray): Dosages of the population (n_ind x n_loci).
        private (np.ndarray): Boolean mask of loci with an allele private to this population.
        other_freq (np.ndarray): Allele frequencies of the population compared against.

    Returns:
        float: The estimate rounded to an integer, or NaN for an empty population.
    """
    n = 2 * genotypes.shape[0]
    if n == 0:
        return np.nan

    sub = genotypes[:, private]
    n_obs = np.sum(~np.isnan(sub), axis=0)
    alt = np.nansum(sub, axis=0)

    # The private allele is the alternate one when the other population is
    # fixed for the reference allele, and the reference one otherwise.
    counts = np.where(other_freq[private] == 0, alt, 2 * n_obs - alt)

    f1 = float(np.sum(counts == 1))
    f2 = float(np.sum(counts == 2))

    if f2 > 0:
        f0 = (n - 1) / n * f1**2 / (2 * f2)
    else:
        f0 = (n - 1) / n * f1 * (f1 - 1) / 2

    return float(round(f0))


class PrivateAlleles:
    """Private alleles, fixed differences and allele frequency differences between populations.

    Populations are compared pairwise or each against the pooled remainder ("one2rest"). An allele is private to a population when the other population is fixed for the alternative allele. Optionally, a bootstrap tests whether the private alleles are asymmetrically distributed between the two populations.

    Example:
        >>> pa = PrivateAlleles(gm, verbose=False)
        >>> result = pa.calculate(method="pairwise", matrix_pa=True)
        >>> result.table[["pop1", "pop2", "priv1", "priv2", "fixed"]]
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize the PrivateAlleles object.

        Args:
            genotype_matrix (GenotypeMatrix): Matrix with at least two populations.
            verbose (bool): If True, enable verbose logging and progress bars.
            debug (bool): If True, enable debug logging.
        """
        self.genotype_matrix = genotype_matrix
        self.verbose = verbose

        logman = LoggerManager(
            __name__, prefix="snpreport", debug=debug, verbose=verbose
        )
        self.logger = logman.get_logger()

    def calculate(
        self,
        method: str = "pairwise",
        loc_names: bool = False,
        matrix_pa: bool = False,
        test_asym: bool = False,
        test_asym_boot: int = 100,
        seed: int | np.random.Generator | None = None,
    ) -> PrivateAlleleResult:
        """Compare populations for private alleles and fixed differences.

        Args:
            method (str): 'pairwise' for every pair of populations, 'one2rest' for each population against all others pooled.
            loc_names (bool): If True, also return the locus ids behind each count.
            matrix_pa (bool): If True, also return the population x population private-allele matrix ('pairwise' only).
            test_asym (bool): If True, run the asymmetry bootstrap.
            test_asym_boot (int): Number of bootstrap replicates.
            seed (int | np.random.Generator | None): Seed or generator for the bootstrap.

        Returns:
            PrivateAlleleResult: The comparison table and the optional extras.

        Raises:
            InsufficientPopulationsError: If fewer than two populations are present.
        """
        if isinstance(seed, np.random.Generator):
            rng = seed
            config = PrivateAlleleConfig(
                method, loc_names, matrix_pa, test_asym, test_asym_boot
            )
        else:
            config = PrivateAlleleConfig(
                method, loc_names, matrix_pa, test_asym, test_asym_boot, seed
            )
            rng = np.random.default_rng(config.seed)

        gm = self.genotype_matrix
        part = gm.partition

        if len(part) < 2:
            msg = f"At least two populations are required to compare private alleles, but got {len(part)}."
            self.logger.error(msg)
            raise exceptions.InsufficientPopulationsError(len(part))

        comparisons = self._comparisons(config.method)
        self.logger.info(
            f"Calculating private alleles ({config.method}) for {len(comparisons)} comparisons."
        )

        rows = []
        names = {}
        for pop1, idx1, pop2, idx2 in tqdm(
            comparisons,
            desc="Private alleles: ",
            unit=" comparisons",
            disable=not self.verbose,
        ):
            row, loci = self._compare(pop1, idx1, pop2, idx2, config, rng)
            rows.append(row)
            names[f"{pop1}_{pop2}"] = loci

        table = pd.DataFrame(rows, columns=TABLE_COLUMNS)

        mm = None
        if config.matrix_pa:
            if config.method == "pairwise":
                mm = self._pa_matrix(table, part.labels)
            else:
                self.logger.warning(
                    "The private allele matrix is only available for method='pairwise'."
                )

        return PrivateAlleleResult(
            table=table, loc_names=names if config.loc_names else None, matrix_pa=mm
        )

    def _comparisons(self, method: str) -> List[Tuple[str, np.ndarray, str, np.ndarray]]:
        part = self.genotype_matrix.partition

        if method == "pairwise":
            return [(p1, part[p1], p2, part[p2]) for p1, p2 in combinations(part, 2)]

        everyone = np.arange(self.genotype_matrix.n_ind)
        return [
            (pop, part[pop], "Rest", np.setdiff1d(everyone, part[pop]))
            for pop in part
        ]

    def _compare(
        self,
        pop1: str,
        idx1: np.ndarray,
        pop2: str,
        idx2: np.ndarray,
        config: PrivateAlleleConfig,
        rng: np.random.Generator,
    ) -> Tuple[dict, Dict[str, List[str]]]:
        gm = self.genotype_matrix
        ploidy = gm.ploidy

        g1 = gm.genotypes[idx1]
        g2 = gm.genotypes[idx2]
        f1 = _column_frequencies(g1, ploidy)
        f2 = _column_frequencies(g2, ploidy)

        priv1, priv2, fixed = private_allele_masks(f1, f2)
        n_priv1 = int(priv1.sum())
        n_priv2 = int(priv2.sum())

        valid = ~np.isnan(f1) & ~np.isnan(f2)
        afd = round(float(np.mean(np.abs(f1 - f2)[valid])), 3) if valid.any() else np.nan

        if gm.datatype == "SNP":
            chao1 = chao_undetected(g1, priv1, f2)
            chao2 = chao_undetected(g2, priv2, f1)
        else:
            chao1 = chao2 = np.nan

        asym = asym_sig = np.nan
        if config.test_asym:
            asym, asym_sig = self._asymmetry(
                g1, g2, n_priv1, n_priv2, config.test_asym_boot, rng
            )
            self.logger.debug(f"{pop1} vs {pop2}: asym={asym}, asym_sig={asym_sig}")

        row = {
            "pop1": pop1,
            "pop2": pop2,
            "N1": idx1.size,
            "N2": idx2.size,
            "fixed": int(fixed.sum()),
            "priv1": n_priv1,
            "priv2": n_priv2,
            "Chao1": chao1,
            "Chao2": chao2,
            "totalpriv": n_priv1 + n_priv2,
            "AFD": afd,
            "asym": asym,
            "asym_sig": asym_sig,
        }

        loci = np.asarray(gm.loci, dtype=object)
        names = {
            "pop1_pop2_pa": loci[priv1].tolist(),
            "pop2_pop1_pa": loci[priv2].tolist(),
            "fd": loci[fixed].tolist(),
        }
        return row, names

    def _asymmetry(
        self,
        g1: np.ndarray,
        g2: np.ndarray,
        priv1: int,
        priv2: int,
        n_boot: int,
        rng: np.random.Generator,
    ) -> Tuple[float, float]:
        """Bootstrap test for asymmetry of private alleles between two populations.

        Both pseudo-populations of a replicate are drawn with replacement from the pooled individuals, with ``min(N1, N2)`` individuals each, so that under the null hypothesis neither population is favoured.

        Returns:
            Tuple[float, float]: Mean bootstrap ratio (3 d.p.) and the fraction of replicate ratios above the observed one.
        """
        pooled = np.ascontiguousarray(np.vstack([g1, g2]))
        n = min(g1.shape[0], g2.shape[0])

        boots1 = rng.integers(0, pooled.shape[0], size=(n_boot, n))
        boots2 = rng.integers(0, pooled.shape[0], size=(n_boot, n))

        ratios = _execute_bootstrap_pa(
            n_boot, pooled, boots1, boots2, self.genotype_matrix.ploidy
        )

        observed = 0.5 if priv1 == priv2 else priv1 / (priv1 + priv2)
        return round(float(np.mean(ratios)), 3), float(np.mean(ratios > observed))

    @staticmethod
    def _pa_matrix(table: pd.DataFrame, labels: List[str]) -> pd.DataFrame:
        mm = pd.DataFrame(0, index=labels, columns=labels, dtype=int)
        for row in table.itertuples(index=False):
            mm.loc[row.pop1, row.pop2] = row.priv2
            mm.loc[row.pop2, row.pop1] = row.priv1
        return mm
