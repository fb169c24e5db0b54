from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

import snpreport.utils.custom_exceptions as exceptions
from snpreport.filtering.filtering_methods import maf_mask
from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.containers import LDConfig
from snpreport.utils.logging import LoggerManager

LD_COLUMNS = [
    "pop",
    "chr",
    "pos_loc_a",
    "pos_loc_b",
    "ld_stat",
    "distance",
    "locus_a",
    "locus_b",
    "locus_a_b",
]

SKIPPED_COLUMNS = ["pop", "chr", "reason"]

# Pairs processed per vectorized block.
_PAIR_CHUNK = 20000


@dataclass(frozen=True)
class LDResult:
    """Result of :meth:`LinkageDisequilibrium.calculate`.

    Attributes:
        table (pd.DataFrame): One row per SNP pair and population.
        skipped (pd.DataFrame): Populations (``chr`` is None) and chromosomes that were skipped, with the reason.
        mapped (bool): False when the loci had no usable chromosome/position information.
        ld_stat (str): Name of the statistic in the ``ld_stat`` column.
    """

    table: pd.DataFrame
    skipped: pd.DataFrame = field(
        default_factory=lambda: pd.DataFrame(columns=SKIPPED_COLUMNS)
    )
    mapped: bool = True
    ld_stat: str = "R.squared"


def chromosome_order(chromosome: np.ndarray) -> np.ndarray:
    """Rank of each chromosome name in natural order ('2' before '10', numbers before names)."""
    names = pd.unique(np.asarray(chromosome).astype(str))
    ordered = sorted(
        names, key=lambda c: (0, int(c), "") if c.isdigit() else (1, 0, c)
    )
    rank = {name: i for i, name in enumerate(ordered)}
    return np.array([rank[c] for c in np.asarray(chromosome).astype(str)], dtype=int)


def window_pairs(positions: np.ndarray, max_distance: int) -> Tuple[np.ndarray, np.ndarray]:
    """All index pairs ``(a, b)``, ``a < b``, of sorted unique positions within ``max_distance``.

    Args:
        positions (np.ndarray): Sorted, unique positions.
        max_distance (int): Maximum distance between the two positions of a pair.

    Returns:
        Tuple[np.ndarray, np.ndarray]: Indices of the first and second locus of each pair.
    """
    m = positions.size
    ends = np.searchsorted(positions, positions + max_distance, side="right")
    counts = ends - (np.arange(m) + 1)
    counts = np.maximum(counts, 0)

    total = int(counts.sum())
    starts = np.cumsum(counts) - counts

    ia = np.repeat(np.arange(m), counts)
    ib = np.arange(total) - np.repeat(starts, counts) + ia + 1
    return ia, ib


def pairwise_ld(
    genotypes: np.ndarray,
    ia: np.ndarray,
    ib: np.ndarray,
    ld_stat: str = "R.squared",
    ploidy: int = 2,
) -> np.ndarray:
    """Composite linkage disequilibrium between pairs of loci.

    Statistics come from the dosage correlation over the individuals called at both loci, which does not need phased haplotypes. The covariance of dosages divided by the ploidy estimates the disequilibrium coefficient D.

    Args:
        genotypes (np.ndarray): Dosage matrix (n_ind x n_loci) with NaN for missing calls.
        ia (np.ndarray): Column index of the first locus of each pair.
        ib (np.ndarray): Column index of the second locus of each pair.
        ld_stat (str): 'R.squared', 'R', 'Covar' (D) or 'D.prime'.
        ploidy (int): Allele copies per call.

    Returns:
        np.ndarray: The statistic for each pair; NaN where it is undefined (monomorphic locus or fewer than two shared individuals).
    """
    out = np.empty(ia.size, dtype=float)

    for start in range(0, ia.size, _PAIR_CHUNK):
        sl = slice(start, start + _PAIR_CHUNK)
        xa = genotypes[:, ia[sl]]
        xb = genotypes[:, ib[sl]]

        ok = ~np.isnan(xa) & ~np.isnan(xb)
        n = ok.sum(axis=0).astype(float)
        xa = np.where(ok, xa, 0.0)
        xb = np.where(ok, xb, 0.0)

        with np.errstate(divide="ignore", invalid="ignore"):
            ma = xa.sum(axis=0) / n
            mb = xb.sum(axis=0) / n
            da = np.where(ok, xa - ma, 0.0)
            db = np.where(ok, xb - mb, 0.0)

            cov = (da * db).sum(axis=0) / n
            va = (da**2).sum(axis=0) / n
            vb = (db**2).sum(axis=0) / n

            r = cov / np.sqrt(va * vb)
            r[(va == 0) | (vb == 0)] = np.nan

            if ld_stat == "R":
                stat = r
            elif ld_stat == "R.squared":
                stat = r**2
            else:
                d = cov / ploidy
                if ld_stat == "Covar":
                    stat = d
                else:
                    pa = ma / ploidy
                    pb = mb / ploidy
                    dmax = np.where(
                        d > 0,
                        np.minimum(pa * (1 - pb), (1 - pa) * pb),
                        np.minimum(pa * pb, (1 - pa) * (1 - pb)),
                    )
                    stat = np.where(dmax > 0, d / dmax, np.nan)

        stat = np.where(n >= 2, stat, np.nan)
        out[sl] = stat

    return out


class LinkageDisequilibrium:
    """Pairwise linkage disequilibrium between SNPs within each population.

    For every population with more than ``ind_limit`` individuals, loci are ordered by chromosome (natural order, so "2" precedes "10") and position, filtered on the population's own minor allele frequency, and LD is computed for every pair on the same chromosome no further apart than ``ld_max_pairwise`` base pairs. Without chromosome/position information all loci are placed on a single chromosome and every pair is tested.

    Example:
        >>> ld = LinkageDisequilibrium(gm, verbose=True)
        >>> res = ld.calculate(ld_max_pairwise=100000, maf=0.05)
        >>> populations_in_ld(res.table, ld_threshold=0.2)
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize the LinkageDisequilibrium object.

        Args:
            genotype_matrix (GenotypeMatrix): The matrix to scan.
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
        ld_max_pairwise: int | str | None = 1000000,
        maf: float = 0.05,
        ld_stat: str = "R.squared",
        ind_limit: int = 10,
    ) -> LDResult:
        """Calculate pairwise LD in every population.

        Args:
            ld_max_pairwise (int | str | None): Maximum distance in bp between the SNPs of a pair. None or 'unmapped' treats the SNPs as unmapped and tests all pairs.
            maf (float): Minimum minor allele frequency within the population (a count if greater than 1). 0 disables the filter.
            ld_stat (str): 'R.squared', 'R', 'Covar' or 'D.prime'.
            ind_limit (int): Populations with this many individuals or fewer are skipped.

        Returns:
            LDResult: The LD table and the skipped populations/chromosomes.

        Raises:
            InvalidThresholdError: If ``maf`` is not a valid frequency or count.
        """
        if isinstance(ld_max_pairwise, str):
            if ld_max_pairwise != "unmapped":
                msg = f"ld_max_pairwise must be an integer, None or 'unmapped', but got: {ld_max_pairwise}"
                self.logger.error(msg)
                raise ValueError(msg)
            ld_max_pairwise = None

        config = LDConfig(
            ld_max_pairwise=ld_max_pairwise, maf=maf, ld_stat=ld_stat, ind_limit=ind_limit
        )

        if 0.5 < config.maf <= 1:
            msg = f"maf must be in [0, 0.5] or a count greater than 1, but got: {config.maf}"
            self.logger.error(msg)
            raise exceptions.InvalidThresholdError(config.maf, msg)

        gm = self.genotype_matrix
        mapped = config.mapped and gm.is_mapped

        if mapped:
            chromosome = gm.chromosome
            position = gm.position
            max_distance = config.ld_max_pairwise
        else:
            self.logger.warning(
                "There is no chromosome/position information for the loci. Assigning all SNPs to chromosome '1' at positions 1 to n and calculating LD for all SNP pairs."
            )
            chromosome = np.full(gm.n_loci, "1", dtype=object)
            position = np.arange(1, gm.n_loci + 1)
            max_distance = gm.n_loci

        frames: List[pd.DataFrame] = []
        skipped: List[dict] = []

        for pop in tqdm(
            gm.partition,
            desc="LD populations: ",
            unit=" pops",
            disable=not self.verbose,
        ):
            rows = gm.partition[pop]

            if rows.size <= config.ind_limit:
                self.logger.warning(
                    f"Skipping population {pop} because it has {config.ind_limit} or fewer individuals."
                )
                skipped.append(
                    {"pop": pop, "chr": None, "reason": f"n_ind <= {config.ind_limit}"}
                )
                continue

            self.logger.info(f"Calculating pairwise LD in population {pop}")
            frames.extend(
                self._population_ld(
                    pop, rows, chromosome, position, max_distance, config, skipped
                )
            )

        if frames:
            table = pd.concat(frames, ignore_index=True)
        else:
            table = pd.DataFrame(columns=LD_COLUMNS)

        return LDResult(
            table=table,
            skipped=pd.DataFrame(skipped, columns=SKIPPED_COLUMNS),
            mapped=mapped,
            ld_stat=config.ld_stat,
        )

    def _population_ld(
        self,
        pop: str,
        rows: np.ndarray,
        chromosome: np.ndarray,
        position: np.ndarray,
        max_distance: int,
        config: LDConfig,
        skipped: List[dict],
    ) -> List[pd.DataFrame]:
        gm = self.genotype_matrix

        order = np.lexsort((position, chromosome_order(chromosome)))
        geno = gm.genotypes[np.ix_(rows, order)]
        chrom = chromosome[order].astype(str)
        pos = np.asarray(position)[order]
        loci = np.asarray(gm.loci, dtype=object)[order]

        if config.maf > 0:
            keep = maf_mask(geno, config.maf, gm.ploidy)
            self.logger.debug(
                f"Population {pop}: {np.count_nonzero(keep)} of {keep.size} loci pass the MAF filter"
            )
            geno, chrom, pos, loci = geno[:, keep], chrom[keep], pos[keep], loci[keep]

        frames = []
        for chrom_name in pd.unique(chrom):
            cols = np.flatnonzero(chrom == chrom_name)

            # Loci sharing a position: the first one is kept.
            _, first = np.unique(pos[cols], return_index=True)
            cols = cols[np.sort(first)]

            if cols.size <= 1:
                skipped.append(
                    {"pop": pop, "chr": chrom_name, "reason": "<= 1 locus"}
                )
                self.logger.debug(
                    f"Population {pop}, chromosome {chrom_name}: one locus or fewer, skipped"
                )
                continue

            ia, ib = window_pairs(pos[cols], max_distance)
            if ia.size == 0:
                continue

            stat = pairwise_ld(
                geno[:, cols], ia, ib, ld_stat=config.ld_stat, ploidy=gm.ploidy
            )
            valid = ~np.isnan(stat)
            ia, ib, stat = ia[valid], ib[valid], stat[valid]
            if stat.size == 0:
                continue

            pos_a = pos[cols][ia]
            pos_b = pos[cols][ib]
            locus_a = loci[cols][ia]
            locus_b = loci[cols][ib]

            frames.append(
                pd.DataFrame(
                    {
                        "pop": pop,
                        "chr": chrom_name,
                        "pos_loc_a": pos_a,
                        "pos_loc_b": pos_b,
                        "ld_stat": stat,
                        "distance": pos_b - pos_a,
                        "locus_a": locus_a,
                        "locus_b": locus_b,
                        "locus_a_b": [f"{a}_{b}" for a, b in zip(locus_a, locus_b)],
                    },
                    columns=LD_COLUMNS,
                )
            )

        return frames


def populations_in_ld(table: pd.DataFrame, ld_threshold: float = 0.2) -> pd.DataFrame:
    """Number of populations in which the same SNP pair is in LD.

    Args:
        table (pd.DataFrame): The ``table`` of an :class:`LDResult`.
        ld_threshold (float): A pair is in LD in a population when its statistic exceeds this value.

    Returns:
        pd.DataFrame: Columns ``pops`` (number of populations) and ``n_loc`` (number of SNP pairs in LD in that many populations).
    """
    in_ld = table[table["ld_stat"] > ld_threshold]
    if in_ld.empty:
        return pd.DataFrame({"pops": pd.Series(dtype=int), "n_loc": pd.Series(dtype=int)})

    per_pair = in_ld.groupby("locus_a_b")["pop"].nunique()
    counts = per_pair.value_counts().sort_index()
    return pd.DataFrame(
        {"pops": counts.index.astype(int), "n_loc": counts.to_numpy().astype(int)}
    )
