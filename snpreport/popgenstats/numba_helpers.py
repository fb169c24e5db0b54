from typing import Tuple

import numpy as np
from numba import njit, prange


@njit(inline="always")
def _safe_ratio(num: float, den: float, ret_val: float = 0.0) -> float:
    """Compute a safe ratio avoiding division by zero.

    Args:
        num (float): Numerator of the ratio.
        den (float): Denominator of the ratio.
        ret_val (float): Value to return if the denominator is zero (default is 0.0).

    Returns:
        float: The computed ratio or `ret_val` if the denominator is zero.
    """
    return num / den if np.abs(den) > 0.0 else ret_val


@njit
def _column_frequencies(geno: np.ndarray, ploidy: int) -> np.ndarray:
    """Allele frequency of each column of a dosage matrix, ignoring NaN.

    Args:
        geno (np.ndarray): Dosage matrix of shape ``(n_ind, n_loci)`` with NaN for missing calls.
        ploidy (int): Divisor turning the mean dosage into a frequency (2 for SNP, 1 for presence/absence).

    Returns:
        np.ndarray: Frequencies of shape ``(n_loci,)``; NaN where a column has no data.
    """
    n_ind, n_loci = geno.shape
    freqs = np.empty(n_loci, dtype=np.float64)
    for j in range(n_loci):
        total = 0.0
        count = 0
        for i in range(n_ind):
            val = geno[i, j]
            if not np.isnan(val):
                total += val
                count += 1
        freqs[j] = total / count / ploidy if count > 0 else np.nan
    return freqs


@njit(inline="always")
def _count_private(f1: np.ndarray, f2: np.ndarray) -> Tuple[int, int]:
    """Count loci with an allele private to each of two populations.

    An allele is private to population 1 when population 2 is fixed for the other allele while population 1 is not. Loci without data in either population are skipped.

    Args:
        f1 (np.ndarray): Allele frequencies of population 1.
        f2 (np.ndarray): Allele frequencies of population 2.

    Returns:
        Tuple[int, int]: Loci with an allele private to population 1, and to population 2.
    """
    pa12 = 0
    pa21 = 0
    for j in range(f1.shape[0]):
        a = f1[j]
        b = f2[j]
        if np.isnan(a) or np.isnan(b):
            continue
        if (b == 0.0 and a != 0.0) or (b == 1.0 and a != 1.0):
            pa12 += 1
        if (a == 0.0 and b != 0.0) or (a == 1.0 and b != 1.0):
            pa21 += 1
    return pa12, pa21


@njit(parallel=True)
def _execute_bootstrap_pa(
    n_boot: int,
    pooled: np.ndarray,
    boots1: np.ndarray,
    boots2: np.ndarray,
    ploidy: int,
) -> np.ndarray:
    """Private-allele asymmetry ratios for bootstrap pseudo-populations.

    Each replicate ``b`` forms two pseudo-populations from the rows ``boots1[b]`` and ``boots2[b]`` of the pooled dosage matrix and records ``pa12 / (pa12 + pa21)``, or 0.5 when the two counts are equal.

    Args:
        n_boot (int): Number of bootstrap replicates.
        pooled (np.ndarray): Dosage matrix of both populations stacked, shape ``(N1 + N2, L)``.
        boots1 (np.ndarray): Row indices of the first pseudo-population, shape ``(n_boot, n)``.
        boots2 (np.ndarray): Row indices of the second pseudo-population, shape ``(n_boot, n)``.
        ploidy (int): Divisor turning the mean dosage into a frequency.

    Returns:
        np.ndarray: Ratio of each replicate, shape ``(n_boot,)``.
    """
    boot_res = np.empty(n_boot, dtype=np.float64)
    for b in prange(n_boot):
        f1 = _column_frequencies(pooled[boots1[b]], ploidy)
        f2 = _column_frequencies(pooled[boots2[b]], ploidy)
        pa12, pa21 = _count_private(f1, f2)
        if pa12 == pa21:
            boot_res[b] = 0.5
        else:
            boot_res[b] = _safe_ratio(float(pa12), float(pa12 + pa21), 0.5)
    return boot_res
