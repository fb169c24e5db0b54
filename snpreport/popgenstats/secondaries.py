from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

import snpreport.utils.custom_exceptions as exceptions
from snpreport.read_input.genotype_matrix import GenotypeMatrix
from snpreport.utils.containers import SecondariesConfig
from snpreport.utils.logging import LoggerManager

REPORT_PARAMS = [
    "n.total.tags",
    "n.SNPs.secondaries",
    "n.invariant.tags",
    "n.tags.secondaries",
    "n.inv.gen",
    "mean.len.tag",
    "n.invariant",
    "Lambda",
]


@dataclass(frozen=True)
class PoissonFitState:
    """State of the zero-truncated Poisson fit.

    Attributes:
        lambda_estimate (float): Last estimate of the Poisson mean.
        converged (bool): Whether the iteration met the tolerance.
        iteration_count (int): Iterations performed.
    """

    lambda_estimate: float
    converged: bool
    iteration_count: int


@dataclass(frozen=True)
class SecondariesResult:
    """Result of :meth:`SecondariesReport.report`.

    Attributes:
        table (pd.DataFrame): ``Param``/``Value`` table of the secondaries statistics.
        fit (PoissonFitState | None): The Poisson fit, or None when there were no secondaries.
        observed (pd.Series): Number of sequence tags by the number of SNPs they carry.
        expected (pd.Series | None): Poisson expectation for the same classes, including the zero class.
    """

    table: pd.DataFrame
    fit: PoissonFitState | None
    observed: pd.Series
    expected: pd.Series | None


def estimate_poisson_zero_class(
    freqs: Sequence[float], nsim: int = 1000, delta: float = 1e-5
) -> Tuple[int, PoissonFitState]:
    """Estimate the unobserved zero class of a zero-truncated Poisson sample.

    ``freqs[i]`` is the number of sequence tags carrying ``i`` SNPs; tags with no SNP cannot be observed, so ``freqs[0]`` is ignored. The Poisson mean is found by the fixed-point iteration :math:`k \\leftarrow \\bar{t} (1 - e^{-k})` started at the truncated mean :math:`\\bar{t}`.

    Args:
        freqs (Sequence[float]): Tag counts by number of SNPs per tag.
        nsim (int): Maximum number of iterations.
        delta (float): Convergence tolerance.

    Returns:
        Tuple[int, PoissonFitState]: Estimated number of tags without SNPs, and the converged fit.

    Raises:
        PoissonEstimationError: If the iteration does not converge within ``nsim`` iterations.
        ValueError: If no tags are observed.
    """
    freqs = np.asarray(freqs, dtype=float).copy()
    if freqs.size > 0:
        freqs[0] = 0.0

    n_obs = freqs.sum()
    if n_obs <= 0:
        raise ValueError("At least one sequence tag must be observed.")

    tmean = float(np.sum(np.arange(freqs.size) * freqs) / n_obs)

    k = tmean
    for i in range(1, nsim + 1):
        k_new = tmean * (1.0 - np.exp(-k))
        if abs(k_new - k) <= delta:
            state = PoissonFitState(
                lambda_estimate=float(k_new), converged=True, iteration_count=i
            )
            p0 = stats.poisson.pmf(0, state.lambda_estimate)
            zero_class = int(round(p0 * n_obs / (1.0 - p0)))
            return zero_class, state
        k = k_new

    raise exceptions.PoissonEstimationError(
        PoissonFitState(lambda_estimate=float(k), converged=False, iteration_count=nsim)
    )


class SecondariesReport:
    """Report on secondaries: SNPs sharing a sequence tag with another SNP.

    Counts the tags and the secondary SNPs, estimates the number of sequence tags without any SNP from a zero-truncated Poisson fit, and from it the number of invariant sites, which are needed to correct heterozygosity estimates for invariant sequence.

    Example:
        >>> rep = SecondariesReport(gm, verbose=True)
        >>> res = rep.report(nsim=1000, taglength=69)
        >>> res.table
    """

    def __init__(
        self, genotype_matrix: GenotypeMatrix, verbose: bool = False, debug: bool = False
    ) -> None:
        """Initialize the SecondariesReport.

        Args:
            genotype_matrix (GenotypeMatrix): SNP matrix with CloneID or AlleleID locus metrics.
            verbose (bool): If True, enable verbose logging.
            debug (bool): If True, enable debug logging.
        """
        self.genotype_matrix = genotype_matrix

        logman = LoggerManager(
            __name__, prefix="snpreport", debug=debug, verbose=verbose
        )
        self.logger = logman.get_logger()

    def report(self, nsim: int = 1000, taglength: int = 69) -> SecondariesResult:
        """Tabulate the secondaries statistics.

        Args:
            nsim (int): Maximum iterations of the Poisson fit.
            taglength (int): Mean tag length used when the ``TrimmedSequence`` locus metric is absent.

        Returns:
            SecondariesResult: The report table, the fit and the observed/expected tag tables.

        Raises:
            UnsupportedDataTypeError: If the matrix does not hold SNP data.
            MissingLocusMetadataError: If neither CloneID nor AlleleID is available.
        """
        config = SecondariesConfig(nsim=nsim, taglength=taglength)
        gm = self.genotype_matrix

        if gm.datatype != "SNP":
            msg = f"The secondaries report requires SNP data, but got: {gm.datatype}"
            self.logger.error(msg)
            raise exceptions.UnsupportedDataTypeError(gm.datatype, ["SNP"])

        try:
            clones = gm.clone_ids()
        except exceptions.MissingLocusMetadataError as e:
            self.logger.error(e.message)
            raise

        metrics = pd.DataFrame({"CloneID": clones})
        snps_per_tag = metrics.groupby("CloneID", sort=False).size()
        n_tags = int(snps_per_tag.size)

        locus_metrics = gm.locus_metrics
        if locus_metrics is not None and "TrimmedSequence" in locus_metrics.columns:
            metrics["len"] = locus_metrics["TrimmedSequence"].astype(str).str.len()
            first = metrics.drop_duplicates("CloneID").set_index("CloneID")["len"]
            n_inv_gen = float((first - snps_per_tag.reindex(first.index)).sum())
            mean_len_tag = float(first.mean())
        else:
            self.logger.warning(
                f"The locus metric 'TrimmedSequence' was not found. Mean tag length assumed to be {config.taglength}."
            )
            mean_len_tag = float(config.taglength)
            n_inv_gen = float(round((mean_len_tag - snps_per_tag.mean()) * n_tags))

        # Index i = number of tags carrying i SNPs.
        counts = np.bincount(snps_per_tag.to_numpy(), minlength=1)
        counts[0] = 0
        observed = pd.Series(counts, name="n_tags")
        observed.index.name = "n_snps"

        n_secondaries = gm.n_loci - n_tags
        n_tags_secondaries = int(counts[2:].sum())

        fit = None
        expected = None
        zero_class = np.nan

        if n_secondaries == 0:
            self.logger.warning("No loci with secondaries found.")
            n_tags_secondaries = np.nan
        else:
            self.logger.info(
                "Estimating the lambda of the Poisson expectation for SNPs per tag."
            )
            try:
                zero_class, fit = estimate_poisson_zero_class(
                    counts, nsim=config.nsim, delta=config.delta
                )
                self.logger.debug(
                    f"Converged on lambda {fit.lambda_estimate} after {fit.iteration_count} iterations"
                )
            except exceptions.PoissonEstimationError as e:
                self.logger.warning(e.message)
                fit = e.state

            if fit.converged:
                n = counts.sum()
                p0 = stats.poisson.pmf(0, fit.lambda_estimate)
                expected = pd.Series(
                    stats.poisson.pmf(np.arange(counts.size), fit.lambda_estimate)
                    * n
                    / (1.0 - p0),
                    name="n_tags",
                )
                expected.index.name = "n_snps"

        if np.isnan(zero_class):
            n_invariant = np.nan
        else:
            n_invariant = float(round(zero_class * mean_len_tag + n_inv_gen))

        lam = fit.lambda_estimate if fit is not None and fit.converged else np.nan

        values = [
            n_tags,
            n_secondaries,
            zero_class,
            n_tags_secondaries,
            n_inv_gen,
            mean_len_tag,
            n_invariant,
            lam,
        ]
        table = pd.DataFrame(
            {"Param": REPORT_PARAMS, "Value": np.asarray(values, dtype=float)}
        )

        self.logger.info(f"Total number of SNP loci scored: {gm.n_loci}")
        self.logger.info(f"Number of sequence tags in total: {n_tags}")
        self.logger.info(
            f"Number of secondary SNP loci that would be removed on filtering: {n_secondaries}"
        )

        return SecondariesResult(
            table=table, fit=fit, observed=observed, expected=expected
        )
