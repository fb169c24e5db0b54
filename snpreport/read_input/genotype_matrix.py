from collections.abc import Mapping
from functools import cached_property
from typing import Any, Dict, Iterator, List, Literal, Sequence, Tuple

import numpy as np
import pandas as pd

import snpreport.utils.custom_exceptions as exceptions
from snpreport.utils.history import HistoryRecord

PLOIDY = {"SNP": 2, "SilicoDArT": 1}


class PopulationPartition(Mapping):
    """Read-only mapping of population label to the row indices of its individuals.

    Labels are kept in sorted order so that every engine iterating over the partition visits the populations in the same order. The index arrays are read-only.

    Example:
        >>> part = PopulationPartition.from_assignments(["b", "a", "b"])
        >>> list(part)
        ['a', 'b']
        >>> part["b"]
        array([0, 2])
    """

    def __init__(self, indices: Mapping[str, Sequence[int]]) -> None:
        self._indices: Dict[str, np.ndarray] = {}
        for label in sorted(indices, key=str):
            rows = np.asarray(indices[label], dtype=np.intp).copy()
            rows.setflags(write=False)
            self._indices[str(label)] = rows

    @classmethod
    def from_assignments(cls, populations: Sequence[Any]) -> "PopulationPartition":
        """Build a partition from a per-individual population vector.

        Args:
            populations (Sequence[Any]): Population label of each individual, in row order.

        Returns:
            PopulationPartition: The partition.
        """
        labels = np.asarray([str(p) for p in populations], dtype=object)
        return cls({lab: np.flatnonzero(labels == lab) for lab in np.unique(labels)})

    def __getitem__(self, label: str) -> np.ndarray:
        return self._indices[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._indices)

    def __len__(self) -> int:
        return len(self._indices)

    @property
    def labels(self) -> List[str]:
        return list(self._indices)

    def sizes(self) -> pd.Series:
        """Number of individuals per population."""
        return pd.Series(
            {lab: rows.size for lab, rows in self._indices.items()},
            name="n_ind",
            dtype=int,
        )

    def __repr__(self) -> str:
        sizes = ", ".join(f"{k}: {v.size}" for k, v in self._indices.items())
        return f"PopulationPartition({{{sizes}}})"


class GenotypeMatrix:
    """Immutable genotype matrix (individuals x loci) with its metadata.

    Cells hold allele dosages (0/1/2 for SNP data, 0/1 for presence/absence "SilicoDArT" data) or NaN for missing calls. The underlying array is read-only; every operation that removes individuals or loci returns a new ``GenotypeMatrix`` and, when asked to, appends a ``HistoryRecord`` describing the step.

    Example:
        >>> gm = GenotypeMatrix(
        ...     [[0, 1, -9], [2, 1, 0]],
        ...     samples=["ind1", "ind2"],
        ...     populations=["popA", "popB"],
        ... )
        >>> gm.n_ind, gm.n_loci
        (2, 3)
        >>> gm.partition["popB"]
        array([1])

    Attributes:
        genotypes (np.ndarray): Read-only float64 dosage array with NaN for missing.
        samples (List[str]): Individual ids.
        loci (List[str]): Locus ids.
        populations (List[str]): Population label of each individual.
        datatype (str): 'SNP' or 'SilicoDArT'.
        chromosome (np.ndarray | None): Chromosome of each locus.
        position (np.ndarray | None): Base-pair position of each locus.
        locus_metrics (pd.DataFrame | None): Per-locus metadata (e.g. AlleleID, CloneID, TrimmedSequence).
        history (Tuple[HistoryRecord, ...]): Steps that produced this matrix.
    """

    def __init__(
        self,
        genotypes: np.ndarray | pd.DataFrame | Sequence[Sequence[float]],
        samples: Sequence[str] | None = None,
        loci: Sequence[str] | None = None,
        populations: Sequence[Any] | None = None,
        datatype: Literal["SNP", "SilicoDArT"] = "SNP",
        chromosome: Sequence[Any] | None = None,
        position: Sequence[int] | None = None,
        locus_metrics: pd.DataFrame | None = None,
        missing_value: float | None = -9,
        history: Sequence[HistoryRecord] = (),
    ) -> None:
        """Initialize the GenotypeMatrix.

        Args:
            genotypes (np.ndarray | pd.DataFrame | Sequence[Sequence[float]]): Dosage matrix of shape (n_ind, n_loci). A DataFrame supplies default sample (index) and locus (column) ids.
            samples (Sequence[str] | None): Individual ids. Defaults to the DataFrame index or 'ind_1'..'ind_n'.
            loci (Sequence[str] | None): Locus ids. Defaults to the DataFrame columns or 'locus_1'..'locus_n'.
            populations (Sequence[Any] | None): Population of each individual. Defaults to a single population 'pop1'.
            datatype (Literal["SNP", "SilicoDArT"]): Marker type; sets the ploidy (2 or 1).
            chromosome (Sequence[Any] | None): Chromosome of each locus.
            position (Sequence[int] | None): Position of each locus.
            locus_metrics (pd.DataFrame | None): Per-locus metadata with one row per locus.
            missing_value (float | None): Sentinel for missing calls in addition to NaN. Defaults to -9.
            history (Sequence[HistoryRecord]): Existing history to carry over.

        Raises:
            ValueError: If the data type is unknown or metadata lengths do not match the matrix.
            InvalidGenotypeError: If a dosage is negative, fractional, or exceeds the ploidy.
            PopulationAssignmentError: If the population vector length does not match the individuals.
        """
        if datatype not in PLOIDY:
            raise ValueError(
                f"Invalid datatype: {datatype}. Supported: {', '.join(PLOIDY)}."
            )

        if isinstance(genotypes, pd.DataFrame):
            if samples is None:
                samples = genotypes.index.astype(str).tolist()
            if loci is None:
                loci = genotypes.columns.astype(str).tolist()
            genotypes = genotypes.to_numpy()

        arr = np.array(genotypes, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(
                f"Genotype matrix must be 2-dimensional, but got shape {arr.shape}."
            )

        if missing_value is not None:
            arr[arr == missing_value] = np.nan

        self._datatype = datatype
        self._validate_dosages(arr, PLOIDY[datatype])
        arr.setflags(write=False)
        self._genotypes = arr

        n_ind, n_loci = arr.shape

        if samples is None:
            samples = [f"ind_{i + 1}" for i in range(n_ind)]
        if loci is None:
            loci = [f"locus_{j + 1}" for j in range(n_loci)]
        if populations is None:
            populations = ["pop1"] * n_ind

        self._samples = [str(s) for s in samples]
        self._loci = [str(l) for l in loci]
        self._populations = [str(p) for p in populations]

        if len(self._samples) != n_ind:
            raise ValueError(
                f"Expected {n_ind} sample ids, but got {len(self._samples)}."
            )
        if len(self._loci) != n_loci:
            raise ValueError(f"Expected {n_loci} locus ids, but got {len(self._loci)}.")
        if len(self._populations) != n_ind:
            raise exceptions.PopulationAssignmentError(
                f"Population vector has {len(self._populations)} entries, but the matrix has {n_ind} individuals."
            )

        self._chromosome = self._locus_vector(chromosome, n_loci, "chromosome", str)
        self._position = self._locus_vector(position, n_loci, "position", np.int64)

        if locus_metrics is not None:
            if len(locus_metrics) != n_loci:
                raise ValueError(
                    f"locus_metrics has {len(locus_metrics)} rows, but the matrix has {n_loci} loci."
                )
            locus_metrics = locus_metrics.reset_index(drop=True).copy()
        self._locus_metrics = locus_metrics

        self._history: Tuple[HistoryRecord, ...] = tuple(history)

    @staticmethod
    def _validate_dosages(arr: np.ndarray, ploidy: int) -> None:
        observed = arr[~np.isnan(arr)]
        bad = (observed < 0) | (observed > ploidy) | (observed != np.round(observed))
        if np.any(bad):
            values = np.unique(observed[bad])[:5]
            raise exceptions.InvalidGenotypeError(
                f"Allele dosages must be integers between 0 and {ploidy}, but found: {values.tolist()}"
            )

    @staticmethod
    def _locus_vector(values, n_loci: int, name: str, dtype) -> np.ndarray | None:
        if values is None:
            return None
        vec = np.asarray(values).astype(dtype)
        if vec.shape != (n_loci,):
            raise ValueError(f"Expected {n_loci} {name} values, but got {vec.shape}.")
        vec.setflags(write=False)
        return vec

    @property
    def genotypes(self) -> np.ndarray:
        return self._genotypes

    @property
    def samples(self) -> List[str]:
        return list(self._samples)

    @property
    def loci(self) -> List[str]:
        return list(self._loci)

    @property
    def populations(self) -> List[str]:
        return list(self._populations)

    @property
    def datatype(self) -> str:
        return self._datatype

    @property
    def ploidy(self) -> int:
        return PLOIDY[self._datatype]

    @property
    def chromosome(self) -> np.ndarray | None:
        return self._chromosome

    @property
    def position(self) -> np.ndarray | None:
        return self._position

    @property
    def locus_metrics(self) -> pd.DataFrame | None:
        if self._locus_metrics is None:
            return None
        return self._locus_metrics.copy()

    @property
    def history(self) -> Tuple[HistoryRecord, ...]:
        return self._history

    @property
    def n_ind(self) -> int:
        return self._genotypes.shape[0]

    @property
    def n_loci(self) -> int:
        return self._genotypes.shape[1]

    @property
    def is_mapped(self) -> bool:
        """True when both chromosome and position are known for every locus."""
        return self._chromosome is not None and self._position is not None

    @cached_property
    def partition(self) -> PopulationPartition:
        """Population label to row indices, computed once per matrix."""
        return PopulationPartition.from_assignments(self._populations)

    @property
    def pop_names(self) -> List[str]:
        return self.partition.labels

    def clone_ids(self) -> np.ndarray:
        """Sequence tag (clone) id of every locus.

        Taken from the ``CloneID`` locus metric, or from ``AlleleID`` as the text before the first ``|``.

        Raises:
            MissingLocusMetadataError: If neither column is present.
        """
        metrics = self._locus_metrics
        if metrics is not None and "CloneID" in metrics.columns:
            return metrics["CloneID"].astype(str).to_numpy()
        if metrics is not None and "AlleleID" in metrics.columns:
            return (
                metrics["AlleleID"].astype(str).str.split("|", n=1).str[0].to_numpy()
            )
        raise exceptions.MissingLocusMetadataError(["CloneID", "AlleleID"])

    def population_matrix(self, label: str) -> np.ndarray:
        """Dosages of one population's individuals (a copy)."""
        return self._genotypes[self.partition[label]]

    def subset(
        self,
        samples: np.ndarray | Sequence[int] | None = None,
        loci: np.ndarray | Sequence[int] | None = None,
        method: str | None = None,
        params: Dict[str, Any] | None = None,
    ) -> "GenotypeMatrix":
        """Return a new matrix restricted to the given individuals and loci.

        Args:
            samples (np.ndarray | Sequence[int] | None): Boolean mask or integer indices of the individuals to keep. All individuals if None.
            loci (np.ndarray | Sequence[int] | None): Boolean mask or integer indices of the loci to keep. All loci if None.
            method (str | None): If given, a history record with this name is appended to the new matrix.
            params (Dict[str, Any] | None): Parameters stored in the history record.

        Returns:
            GenotypeMatrix: The new matrix. The original is unchanged.
        """
        rows = self._as_index(samples, self.n_ind, "samples")
        cols = self._as_index(loci, self.n_loci, "loci")

        history = self._history
        if method is not None:
            record = HistoryRecord(
                step=len(history) + 1,
                method=method,
                params=dict(params or {}),
                n_ind_before=self.n_ind,
                n_ind_after=rows.size,
                n_loci_before=self.n_loci,
                n_loci_after=cols.size,
            )
            history = history + (record,)

        metrics = None
        if self._locus_metrics is not None:
            metrics = self._locus_metrics.iloc[cols]

        return GenotypeMatrix(
            self._genotypes[np.ix_(rows, cols)],
            samples=[self._samples[i] for i in rows],
            loci=[self._loci[j] for j in cols],
            populations=[self._populations[i] for i in rows],
            datatype=self._datatype,
            chromosome=None if self._chromosome is None else self._chromosome[cols],
            position=None if self._position is None else self._position[cols],
            locus_metrics=metrics,
            missing_value=None,
            history=history,
        )

    @staticmethod
    def _as_index(selection, n: int, name: str) -> np.ndarray:
        if selection is None:
            return np.arange(n)

        sel = np.asarray(selection)
        if sel.dtype == bool:
            if sel.shape != (n,):
                raise ValueError(
                    f"Boolean {name} mask must have length {n}, but got {sel.shape}."
                )
            return np.flatnonzero(sel)

        sel = sel.astype(np.intp).ravel()
        if sel.size and (sel.min() < 0 or sel.max() >= n):
            raise IndexError(f"{name} index out of range for size {n}.")
        return sel

    def to_dataframe(self) -> pd.DataFrame:
        """Dosages as a DataFrame (index = samples, columns = loci)."""
        return pd.DataFrame(self._genotypes, index=self._samples, columns=self._loci)

    def __repr__(self) -> str:
        return (
            f"GenotypeMatrix(datatype={self._datatype!r}, n_ind={self.n_ind}, "
            f"n_loci={self.n_loci}, n_pops={len(self.partition)})"
        )
