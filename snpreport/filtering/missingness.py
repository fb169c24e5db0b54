from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
import pandas as pd

from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.logging import LoggerManager
from snpreport.utils.missing_stats import MissingStats


@dataclass(frozen=True)
class AllNAScan:
    """Loci and individuals whose calls are all missing.

    Attributes:
        loci (List[int]): Sorted column indices of all-missing loci.
        individuals (List[int]): Sorted row indices of all-missing individuals. Always empty when ``by_pop`` is True.
        loci_per_population (Dict[str, List[int]]): All-missing loci within each population (``by_pop`` only).
        by_pop (bool): Whether the scan was done per population.
    """

    loci: List[int] = field(default_factory=list)
    individuals: List[int] = field(default_factory=list)
    loci_per_population: Dict[str, List[int]] = field(default_factory=dict)
    by_pop: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.loci and not self.individuals


class MissingnessScanner:
    """Finds and removes all-missing loci and individuals, and summarizes missing data.

    Example:
        >>> scanner = MissingnessScanner(gm)
        >>> scan = scanner.scan(by_pop=True)
        >>> clean = scanner.filter_allna(by_pop=True)
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize the MissingnessScanner.

        Args:
            genotype_matrix (GenotypeMatrix): The matrix to scan. It is never modified.
            verbose (bool): If True, enable verbose logging.
            debug (bool): If True, enable debug logging.
        """
        self.genotype_matrix = genotype_matrix
        self.verbose = verbose

        logman = LoggerManager(
            __name__, prefix="snpreport", debug=debug, verbose=verbose
        )
        self.logger = logman.get_logger()

    def scan(self, by_pop: bool = False) -> AllNAScan:
        """Find loci (and individuals) with only missing calls.

        With ``by_pop=False``, loci missing in every individual are found first; individuals missing at every remaining locus are found after those loci are set aside. With ``by_pop=True``, a locus is reported when it is entirely missing within at least one population. Individuals are not scanned in that mode.

        Args:
            by_pop (bool): Scan each population separately.

        Returns:
            AllNAScan: The sorted indices found.
        """
        missing = np.isnan(self.genotype_matrix.genotypes)

        if not by_pop:
            loci = np.flatnonzero(missing.all(axis=0))
            keep = np.setdiff1d(np.arange(missing.shape[1]), loci)

            if keep.size:
                individuals = np.flatnonzero(missing[:, keep].all(axis=1))
            else:
                # Every locus is gone; there is nothing left to judge individuals by.
                individuals = np.array([], dtype=int)

            self.logger.debug(
                f"All-missing loci: {loci.size}, all-missing individuals: {individuals.size}"
            )
            return AllNAScan(
                loci=loci.tolist(), individuals=individuals.tolist(), by_pop=False
            )

        per_pop = {}
        union = set()
        for pop, rows in self.genotype_matrix.partition.items():
            if rows.size == 0:
                continue
            found = np.flatnonzero(missing[rows].all(axis=0)).tolist()
            per_pop[pop] = found
            union.update(found)
            self.logger.debug(f"Population {pop}: {len(found)} all-missing loci")

        return AllNAScan(
            loci=sorted(union), loci_per_population=per_pop, by_pop=True
        )

    def filter_allna(self, by_pop: bool = False) -> GenotypeMatrix:
        """Remove all-missing loci (and individuals) found by :meth:`scan`.

        Args:
            by_pop (bool): Scan each population separately.

        Returns:
            GenotypeMatrix: A new matrix with a history record, or the input matrix when nothing needs removing.
        """
        result = self.scan(by_pop=by_pop)
        gm = self.genotype_matrix

        if result.is_empty:
            self.logger.info("No loci or individuals with all missing values found.")
            return gm

        if result.loci:
            self.logger.info(
                f"Removing {len(result.loci)} loci with all missing values."
            )
        if result.individuals:
            ids = [gm.samples[i] for i in result.individuals]
            self.logger.info(
                f"Removing {len(ids)} individuals with all missing values: {', '.join(ids)}"
            )

        keep_loci = np.ones(gm.n_loci, dtype=bool)
        keep_loci[result.loci] = False
        keep_ind = np.ones(gm.n_ind, dtype=bool)
        keep_ind[result.individuals] = False

        return gm.subset(
            samples=keep_ind,
            loci=keep_loci,
            method="filter_allna",
            params={"by_pop": by_pop},
        )

    def calc_missing(self) -> MissingStats:
        """Calculate missing-data proportions at every level.

        Returns:
            MissingStats: Proportions per locus, individual, population-locus, population, and individual by population.
        """
        gm = self.genotype_matrix
        missing = pd.DataFrame(
            np.isnan(gm.genotypes), index=gm.samples, columns=gm.loci
        )
        pops = pd.Series(gm.populations, index=gm.samples, name="population")

        per_locus = missing.mean(axis=0)
        per_individual = missing.mean(axis=1)
        per_population_locus = missing.groupby(pops).mean()
        per_population = missing.groupby(pops).apply(lambda df: df.to_numpy().mean())

        per_individual_population = (
            pd.DataFrame({"population": pops, "missing": per_individual})
            .reset_index(names="sample")
            .pivot(index="population", columns="sample", values="missing")
            .reindex(columns=gm.samples)
        )

        return MissingStats(
            per_locus=per_locus,
            per_individual=per_individual,
            per_population_locus=per_population_locus,
            per_population=per_population,
            per_individual_population=per_individual_population,
        )
