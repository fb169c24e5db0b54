# Description: Main entry point for the snpreport package. It imports the public classes and functions and defines the package version number.

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("snpreport")
except PackageNotFoundError:
    __version__ = "unknown"  # Default if package is not installed

# Defines the public API for the package
__all__ = [
    "GenotypeMatrix",
    "PopulationPartition",
    "MissingnessScanner",
    "FilteringMethods",
    "BasicStatistics",
    "PrivateAlleles",
    "LinkageDisequilibrium",
    "SecondariesReport",
    "PopGenStatistics",
    "estimate_poisson_zero_class",
    "populations_in_ld",
    "history_table",
    "__version__",
]

from snpreport.filtering.filtering_methods import FilteringMethods
from snpreport.filtering.missingness import MissingnessScanner
from snpreport.popgenstats.basic_stats import BasicStatistics
from snpreport.popgenstats.linkage_disequilibrium import (
    LinkageDisequilibrium,
    populations_in_ld,
)
from snpreport.popgenstats.pop_gen_statistics import PopGenStatistics
from snpreport.popgenstats.private_alleles import PrivateAlleles
from snpreport.popgenstats.secondaries import (
    SecondariesReport,
    estimate_poisson_zero_class,
)
from snpreport.read_input.genotype_matrix import GenotypeMatrix, PopulationPartition
from snpreport.utils.history import history_table
