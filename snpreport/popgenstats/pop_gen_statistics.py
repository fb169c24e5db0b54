from logging import Logger
from typing import Literal

import numpy as np
import pandas as pd

from snpreport.filtering.missingness import AllNAScan, MissingnessScanner
from snpreport.popgenstats.basic_stats import BasicStatistics, BasicStatsResult
from snpreport.popgenstats.linkage_disequilibrium import (
    LDResult,
    LinkageDisequilibrium,
    populations_in_ld,
)
from snpreport.popgenstats.private_alleles import PrivateAlleleResult, PrivateAlleles
from snpreport.popgenstats.secondaries import SecondariesReport, SecondariesResult
from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.history import history_table
from snpreport.utils.logging import LoggerManager
from snpreport.utils.missing_stats import MissingStats


class PopGenStatistics:
    """Class for calculating population genetics statistics from a genotype matrix.

    A single entry point to the statistics engines: diversity and differentiation (basic statistics), private alleles, linkage disequilibrium, secondaries, and missing data. The engines never modify the matrix, so one ``PopGenStatistics`` object can run any number of analyses on the same data.

    Example:
        >>> pgs = PopGenStatistics(gm, verbose=True)
        >>> basic = pgs.basic_stats()
        >>> pa = pgs.private_alleles(method="one2rest")
        >>> ld = pgs.ld_map(ld_max_pairwise=500000)
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize the PopGenStatistics object.

        Args:
            genotype_matrix (GenotypeMatrix): Genotype matrix with population assignments.
            verbose (bool): Whether to display verbose output. Defaults to False.
            debug (bool): Whether to display debug output. Defaults to False.
        """
        self.genotype_matrix: GenotypeMatrix = genotype_matrix
        self.verbose: bool = verbose
        self.debug: bool = debug

        logman = LoggerManager(
            __name__, prefix="snpreport", debug=debug, verbose=verbose
        )
        level: str = "DEBUG" if debug else "INFO"
        logman.set_level(level)
        self.logger: Logger = logman.get_logger()

    def basic_stats(self) -> BasicStatsResult:
        """Calculate heterozygosity, gene diversity and differentiation statistics.

        Returns:
            BasicStatsResult: Per-population, per-locus and overall statistics.
        """
        engine = BasicStatistics(
            self.genotype_matrix, verbose=self.verbose, debug=self.debug
        )
        return engine.calculate()

    def private_alleles(
        self,
        method: Literal["pairwise", "one2rest"] = "pairwise",
        loc_names: bool = False,
        matrix_pa: bool = False,
        test_asym: bool = False,
        test_asym_boot: int = 100,
        seed: int | np.random.Generator | None = None,
    ) -> PrivateAlleleResult:
        """Report private alleles and fixed differences between populations.

        Args:
            method (Literal["pairwise", "one2rest"]): Comparison scheme.
            loc_names (bool): Whether to return the loci behind each count.
            matrix_pa (bool): Whether to return the private-allele matrix ('pairwise' only).
            test_asym (bool): Whether to run the asymmetry bootstrap.
            test_asym_boot (int): Number of bootstrap replicates.
            seed (int | np.random.Generator | None): Seed or generator for the bootstrap.

        Returns:
            PrivateAlleleResult: The comparison table and the optional extras.
        """
        engine = PrivateAlleles(
            self.genotype_matrix, verbose=self.verbose, debug=self.debug
        )
        return engine.calculate(
            method=method,
            loc_names=loc_names,
            matrix_pa=matrix_pa,
            test_asym=test_asym,
            test_asym_boot=test_asym_boot,
            seed=seed,
        )

    def ld_map(
        self,
        ld_max_pairwise: int | str | None = 1000000,
        maf: float = 0.05,
        ld_stat: Literal["R.squared", "R", "Covar", "D.prime"] = "R.squared",
        ind_limit: int = 10,
        ld_threshold_pops: float | None = None,
    ) -> LDResult | tuple[LDResult, pd.DataFrame]:
        """Calculate pairwise LD between SNPs in each population.

        Args:
            ld_max_pairwise (int | str | None): Maximum distance in bp between the SNPs of a pair. None or 'unmapped' tests all pairs.
            maf (float): Minimum minor allele frequency (or count if > 1) within each population.
            ld_stat (Literal["R.squared", "R", "Covar", "D.prime"]): LD statistic.
            ind_limit (int): Populations with this many individuals or fewer are skipped.
            ld_threshold_pops (float | None): If given, also tabulate the number of populations in which the same SNP pair exceeds this value.

        Returns:
            LDResult | tuple[LDResult, pd.DataFrame]: The LD result, plus the populations-in-LD table when ``ld_threshold_pops`` is given.
        """
        engine = LinkageDisequilibrium(
            self.genotype_matrix, verbose=self.verbose, debug=self.debug
        )
        result = engine.calculate(
            ld_max_pairwise=ld_max_pairwise,
            maf=maf,
            ld_stat=ld_stat,
            ind_limit=ind_limit,
        )

        self.logger.info(f"Pairs of loci with LD reported: {len(result.table)}")

        if ld_threshold_pops is None:
            return result
        return result, populations_in_ld(result.table, ld_threshold=ld_threshold_pops)

    def secondaries(self, nsim: int = 1000, taglength: int = 69) -> SecondariesResult:
        """Report secondaries and the estimated number of invariant sites.

        Args:
            nsim (int): Maximum iterations of the Poisson fit.
            taglength (int): Mean tag length when sequences are not available.

        Returns:
            SecondariesResult: The report table and the fit.
        """
        engine = SecondariesReport(
            self.genotype_matrix, verbose=self.verbose, debug=self.debug
        )
        return engine.report(nsim=nsim, taglength=taglength)

    def missingness(
        self, by_pop: bool = False, summary: bool = False
    ) -> AllNAScan | MissingStats:
        """Report all-missing loci and individuals, or missing-data proportions.

        Args:
            by_pop (bool): Scan each population separately for all-missing loci.
            summary (bool): If True, return the missing-data proportions instead of the all-missing scan.

        Returns:
            AllNAScan | MissingStats: The scan, or the proportions when ``summary`` is True.
        """
        scanner = MissingnessScanner(
            self.genotype_matrix, verbose=self.verbose, debug=self.debug
        )
        if summary:
            return scanner.calc_missing()

        scan = scanner.scan(by_pop=by_pop)
        self.logger.info(
            f"Loci with all missing values: {len(scan.loci)}; individuals: {len(scan.individuals)}"
        )
        return scan

    def history(self) -> pd.DataFrame:
        """Table of the steps that produced the genotype matrix."""
        return history_table(self.genotype_matrix)
