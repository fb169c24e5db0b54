import numbers
from dataclasses import asdict, dataclass
from typing import Literal

import numpy as np


def _is_integer(value) -> bool:
    """True for Python and numpy integers, False for booleans."""
    return isinstance(value, numbers.Integral) and not isinstance(
        value, (bool, np.bool_)
    )


@dataclass(frozen=True)
class PrivateAlleleConfig:
    """Immutable configuration for private-allele comparisons.

    Attributes:
        method (str): 'pairwise' compares every pair of populations, 'one2rest' compares each population against the pooled remainder.
        loc_names (bool): Whether to return the loci ids behind each private/fixed count.
        matrix_pa (bool): Whether to return the population x population matrix of private alleles.
        test_asym (bool): Whether to run the asymmetry bootstrap.
        test_asym_boot (int): Number of bootstrap replicates.
        seed (int | None): Seed for the bootstrap random number generator.
    """

    method: Literal["pairwise", "one2rest"] = "pairwise"
    loc_names: bool = False
    matrix_pa: bool = False
    test_asym: bool = False
    test_asym_boot: int = 100
    seed: int | None = None

    def __post_init__(self):
        if self.method not in {"pairwise", "one2rest"}:
            raise ValueError(
                f"Invalid method: {self.method}. Supported methods: 'pairwise', 'one2rest'."
            )

        for name in ("loc_names", "matrix_pa", "test_asym"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be a boolean value.")

        if not _is_integer(self.test_asym_boot) or self.test_asym_boot < 1:
            raise ValueError("test_asym_boot must be a positive integer.")

    def to_dict(self) -> dict:
        """Convert the PrivateAlleleConfig to a dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class LDConfig:
    """Immutable configuration for the linkage disequilibrium scan.

    Attributes:
        ld_max_pairwise (int | None): Maximum distance (bp) between SNPs in a pair. None means the SNPs are unmapped and every pair is tested.
        maf (float): Minor allele frequency threshold applied per population. Values greater than 1 are read as a minimum minor allele count.
        ld_stat (str): LD measure to report.
        ind_limit (int): Populations with this many individuals or fewer are skipped.
    """

    ld_max_pairwise: int | None = 1000000
    maf: float = 0.05
    ld_stat: Literal["R.squared", "R", "Covar", "D.prime"] = "R.squared"
    ind_limit: int = 10

    def __post_init__(self):
        if self.ld_max_pairwise is not None:
            if not _is_integer(self.ld_max_pairwise) or self.ld_max_pairwise <= 0:
                raise ValueError("ld_max_pairwise must be a positive integer or None.")

        if self.maf < 0:
            raise ValueError(f"maf must be non-negative, but got: {self.maf}")

        if self.ld_stat not in {"R.squared", "R", "Covar", "D.prime"}:
            raise ValueError(
                f"Invalid ld_stat: {self.ld_stat}. Supported: 'R.squared', 'R', 'Covar', 'D.prime'."
            )

        if self.ind_limit < 0:
            raise ValueError("ind_limit must be a non-negative integer.")

    @property
    def mapped(self) -> bool:
        return self.ld_max_pairwise is not None

    def to_dict(self) -> dict:
        """Convert the LDConfig to a dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class SecondariesConfig:
    """Immutable configuration for the secondaries report.

    Attributes:
        nsim (int): Maximum number of fixed-point iterations for the Poisson lambda.
        taglength (int): Fallback mean sequence tag length when no sequences are available.
        delta (float): Convergence tolerance of the fixed-point iteration.
    """

    nsim: int = 1000
    taglength: int = 69
    delta: float = 1e-5

    def __post_init__(self):
        if self.nsim < 1:
            raise ValueError("nsim must be a positive integer.")

        if self.taglength < 1:
            raise ValueError("taglength must be a positive integer.")

        if self.delta <= 0:
            raise ValueError("delta must be positive.")

    def to_dict(self) -> dict:
        """Convert the SecondariesConfig to a dictionary."""
        return asdict(self)
