from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


@dataclass(slots=True)
class MissingStats:
    """Container for the missing-data proportions of a genotype matrix.

    Attributes:
        per_locus (pd.Series): Proportion of missing calls for each locus (index = locus id).
        per_individual (pd.Series): Proportion of missing calls for each individual (index = sample id).
        per_population_locus (pd.DataFrame): Missing proportion for every population-locus combination (rows = population, columns = locus).
        per_population (pd.Series): Proportion of missing calls aggregated per population.
        per_individual_population (pd.DataFrame): Missing proportion of every individual, arranged by population (rows = population, columns = sample id, NaN outside the individual's population).
    """

    per_locus: pd.Series
    per_individual: pd.Series
    per_population_locus: pd.DataFrame
    per_population: pd.Series
    per_individual_population: pd.DataFrame

    def summary(self) -> pd.DataFrame:
        """Return a compact summary table (mean, median and max per level).

        Returns:
            pd.DataFrame: Summary table indexed by statistic, rounded to 4 decimals.
        """
        rows = [
            ("Loci (mean)", self.per_locus.mean()),
            ("Loci (median)", self.per_locus.median()),
            ("Loci (max)", self.per_locus.max()),
            ("Individuals (mean)", self.per_individual.mean()),
            ("Individuals (median)", self.per_individual.median()),
            ("Individuals (max)", self.per_individual.max()),
            ("Populations (mean)", self.per_population.mean()),
            ("Populations (median)", self.per_population.median()),
            ("Populations (max)", self.per_population.max()),
        ]

        return (
            pd.DataFrame(rows, columns=["Statistic", "Missing Proportion"])
            .set_index("Statistic")
            .round(4)
        )
