import numpy as np

import snpreport.utils.custom_exceptions as exceptions
from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.logging import LoggerManager


def minor_allele_stats(genotypes: np.ndarray, ploidy: int = 2):
    """Minor allele frequency and count of each locus.

    Args:
        genotypes (np.ndarray): Dosage matrix (n_ind x n_loci) with NaN for missing calls.
        ploidy (int): Allele copies per call.

    Returns:
        Tuple[np.ndarray, np.ndarray]: Minor allele frequencies and counts. Both are NaN for loci without data.
    """
    called = np.sum(~np.isnan(genotypes), axis=0) * ploidy
    alt = np.nansum(genotypes, axis=0)

    mac = np.minimum(alt, called - alt).astype(float)
    mac[called == 0] = np.nan

    maf = np.full(mac.shape, np.nan)
    np.divide(mac, called, out=maf, where=called > 0)
    return maf, mac


def maf_mask(genotypes: np.ndarray, threshold: float, ploidy: int = 2) -> np.ndarray:
    """Loci passing a minor allele frequency (or count) threshold.

    Args:
        genotypes (np.ndarray): Dosage matrix (n_ind x n_loci).
        threshold (float): Minimum minor allele frequency. Values greater than 1 are a minimum minor allele count.
        ploidy (int): Allele copies per call.

    Returns:
        np.ndarray: Boolean mask of loci to keep. Loci without data never pass.

    Raises:
        InvalidThresholdError: If the threshold is negative or between 0.5 and 1.
    """
    if threshold < 0 or 0.5 < threshold <= 1:
        raise exceptions.InvalidThresholdError(
            threshold,
            f"MAF thresholds must be in [0, 0.5] (or > 1 for a minimum count), but got: {threshold}",
        )

    maf, mac = minor_allele_stats(genotypes, ploidy)
    values = mac if threshold > 1 else maf

    with np.errstate(invalid="ignore"):
        return values >= threshold


class FilteringMethods:
    """Locus filters for a genotype matrix.

    Each filter returns a new ``GenotypeMatrix`` with a history record; the input is never changed. A filter that would remove every locus logs a warning and returns the input unchanged.

    Example:
        >>> fm = FilteringMethods(gm, verbose=True)
        >>> gm2 = fm.filter_maf(0.05)
        >>> gm3 = FilteringMethods(gm2).filter_secondaries(method="random", seed=42)
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize FilteringMethods.

        Args:
            genotype_matrix (GenotypeMatrix): The matrix to filter.
            verbose (bool): If True, enable verbose logging.
            debug (bool): If True, enable debug logging.
        """
        self.genotype_matrix = genotype_matrix

        logman = LoggerManager(
            __name__, prefix="snpreport", debug=debug, verbose=verbose
        )
        self.logger = logman.get_logger()

    def _apply(self, mask: np.ndarray, method: str, params: dict) -> GenotypeMatrix:
        gm = self.genotype_matrix
        n_keep = int(np.count_nonzero(mask))

        self.logger.debug(f"{method}: keeping {n_keep} of {gm.n_loci} loci")

        if n_keep == 0:
            self.logger.warning(
                f"No loci remain after {method}. Adjust filtering parameters."
            )
            return gm

        if n_keep == gm.n_loci:
            self.logger.info(f"No loci removed by {method}.")

        return gm.subset(loci=mask, method=method, params=params)

    def filter_maf(self, threshold: float) -> GenotypeMatrix:
        """Filters loci where the minor allele frequency is below the threshold.

        Args:
            threshold (float): Minimum minor allele frequency to keep a locus. A value greater than 1 is read as a minimum minor allele count.

        Returns:
            GenotypeMatrix: The filtered matrix.

        Raises:
            InvalidThresholdError: If the threshold is negative or between 0.5 and 1.
        """
        gm = self.genotype_matrix
        kind = "count" if threshold > 1 else "frequency"
        self.logger.info(f"Filtering loci with minor allele {kind} < {threshold}")

        try:
            mask = maf_mask(gm.genotypes, threshold, gm.ploidy)
        except exceptions.InvalidThresholdError as e:
            self.logger.error(e.message)
            raise

        return self._apply(mask, "filter_maf", {"threshold": threshold})

    def filter_secondaries(
        self, method: str = "random", seed: int | None = None
    ) -> GenotypeMatrix:
        """Keep a single SNP per sequence tag (CloneID).

        Args:
            method (str): 'random' keeps a randomly chosen SNP of each tag, 'first' keeps the first one.
            seed (int | None): Seed for the 'random' method.

        Returns:
            GenotypeMatrix: The filtered matrix.

        Raises:
            ValueError: If the method is not supported.
            MissingLocusMetadataError: If the matrix has neither CloneID nor AlleleID metadata.
        """
        if method not in {"random", "first"}:
            msg = f"Invalid method: {method}. Supported methods: 'random', 'first'."
            self.logger.error(msg)
            raise ValueError(msg)

        self.logger.info(f"Filtering secondary SNPs ({method}).")

        gm = self.genotype_matrix
        try:
            clones = gm.clone_ids()
        except exceptions.MissingLocusMetadataError as e:
            self.logger.error(e.message)
            raise

        rng = np.random.default_rng(seed)

        mask = np.zeros(gm.n_loci, dtype=bool)
        for clone in np.unique(clones):
            indices = np.flatnonzero(clones == clone)
            chosen = indices[0] if method == "first" else rng.choice(indices)
            mask[chosen] = True

        return self._apply(
            mask, "filter_secondaries", {"method": method, "seed": seed}
        )
