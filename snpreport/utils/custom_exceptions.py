from typing import List, Sequence


class SNPReportError(Exception):
    """Base exception class for all snpreport errors."""

    def __init__(self, message: str = "An snpreport-related error occurred.") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class InvalidGenotypeError(SNPReportError):
    """Raised when a genotype matrix holds values outside the allowed dosages."""

    def __init__(self, message: str = None) -> None:
        msg = message or "Genotype matrix contains invalid allele dosages."
        super().__init__(msg)


class UnsupportedDataTypeError(SNPReportError):
    """Raised when an engine does not support the matrix data type."""

    def __init__(
        self, datatype: str, supported_types: List[str] | None = None
    ) -> None:
        if supported_types is None:
            supported_types = ["SNP"]
        self.datatype = datatype
        self.supported_types = supported_types
        message = f"Data type '{datatype}' is not supported here. Supported types are {', '.join(supported_types)}."
        super().__init__(message)


class PopulationAssignmentError(SNPReportError):
    """Raised when the population vector does not match the individuals."""

    pass


class InsufficientSamplesError(SNPReportError):
    """Raised when one or more populations are too small for a calculation."""

    def __init__(
        self, populations: Sequence[str], min_size: int = 2, message: str = None
    ) -> None:
        self.populations = list(populations)
        self.min_size = min_size
        msg = message or (
            f"Populations with fewer than {min_size} individuals: "
            f"{', '.join(map(str, self.populations))}. Remove them or merge them "
            "with other populations."
        )
        super().__init__(msg)


class InsufficientPopulationsError(SNPReportError):
    """Raised when fewer than two populations are available for a comparison."""

    def __init__(self, n_pops: int, message: str = None) -> None:
        self.n_pops = n_pops
        msg = message or (
            f"At least two populations are required, but only {n_pops} found."
        )
        super().__init__(msg)


class MissingLocusMetadataError(SNPReportError):
    """Raised when a required locus metadata column is absent."""

    def __init__(self, columns: Sequence[str], message: str = None) -> None:
        self.columns = list(columns)
        msg = message or (
            f"None of the locus metrics {', '.join(self.columns)} were found, "
            "but at least one is required."
        )
        super().__init__(msg)


class PoissonEstimationError(SNPReportError):
    """Raised when the Poisson zero-class iteration fails to converge."""

    def __init__(self, state, message: str = None) -> None:
        self.state = state
        msg = message or (
            f"Poisson lambda failed to converge after {state.iteration_count} "
            f"iterations (last estimate {state.lambda_estimate:.6f}). No reliable "
            "estimate of invariant tags; try a larger 'nsim'."
        )
        super().__init__(msg)


class InvalidThresholdError(SNPReportError):
    """Raised when an invalid threshold is provided for filtering."""

    def __init__(self, threshold: float, message: str = None) -> None:
        self.threshold = threshold
        msg = message or f"Invalid threshold value: {threshold}."
        super().__init__(msg)
