"""
punit.core.errors
=================

Exception hierarchy.

Configuration and integrity problems are raised before any sample executes
and are kept distinct from statistical failures, which are reported through
verdicts rather than exceptions.

Examples
--------
>>> from punit.core.errors import ConfigurationError, PUnitError
>>> issubclass(ConfigurationError, PUnitError) and issubclass(ConfigurationError, ValueError)
True
"""

from __future__ import annotations
from typing import List, Optional, Sequence


class PUnitError(Exception):
    """Base class for all punit errors."""


class ConfigurationError(PUnitError, ValueError):
    """Invalid or contradictory test parameters."""


class NoCompatibleBaselineError(ConfigurationError):
    """No stored baseline fits the current footprint or configuration.

    Two variants exist: a *footprint* mismatch (no spec with the expected
    footprint) and a *configuration* mismatch (specs exist but none agrees on
    every CONFIGURATION covariate).
    """

    def __init__(
        self,
        use_case_id: str,
        expected_footprint: Optional[str],
        available_footprints: Sequence[str],
        message: Optional[str] = None,
        configuration_mismatch: bool = False,
    ) -> None:
        self.use_case_id = use_case_id
        self.expected_footprint = expected_footprint
        self.available_footprints: List[str] = list(available_footprints)
        self.is_configuration_mismatch = configuration_mismatch
        super().__init__(message or self._footprint_message())

    def _footprint_message(self) -> str:
        lines = [
            f"No baseline matches footprint '{self.expected_footprint}' "
            f"for use case '{self.use_case_id}'."
        ]
        if self.available_footprints:
            lines.append(f"Available footprints: {self.available_footprints}.")
            lines.append(
                "The factors or covariate declaration of the test differ from "
                "those used when the baselines were recorded."
            )
        else:
            lines.append("No baselines exist for this use case.")
        lines.append(
            "Run a MEASURE experiment with the current factors and covariates "
            "to create a matching baseline."
        )
        return "\n".join(lines)

    @classmethod
    def configuration_mismatch(
        cls,
        use_case_id: str,
        current_configuration: str,
        available_configurations: Sequence[str],
    ) -> "NoCompatibleBaselineError":
        """Specs exist, but none agrees with the run's CONFIGURATION covariates.

        Configurations are rendered as space-separated ``key=value`` pairs.
        """
        lines = [
            "No baseline matches current CONFIGURATION covariates.",
            "",
            "Current configuration:",
            f"  {current_configuration}",
            "",
        ]
        if available_configurations:
            lines.append("Available baselines have:")
            lines.extend(f"  {config}" for config in available_configurations)
        else:
            lines.append("No baselines found.")
        lines.extend(
            [
                "",
                "What to do:",
                "  - Comparing configurations? Use EXPLORE mode",
                "  - Committed to new config? Run MEASURE to establish baseline",
                "  - Wrong configuration? Check the registered covariate sources",
            ]
        )
        return cls(
            use_case_id,
            current_configuration,
            available_configurations,
            message="\n".join(lines),
            configuration_mismatch=True,
        )


class SpecificationError(PUnitError):
    """Base class for problems with stored specifications."""


class SpecificationIntegrityError(SpecificationError):
    """Schema version or content fingerprint check failed at load time."""


class SpecificationNotFoundError(SpecificationError):
    """No specification file exists for the requested use case."""


class SpecificationLoadError(SpecificationError):
    """A specification file exists but could not be read or parsed."""


class SpecificationValidationError(SpecificationError, ValueError):
    """A parsed specification violates a model constraint."""


class SuccessCriteriaError(PUnitError, ValueError):
    """A success-criteria expression could not be parsed or evaluated."""


class SampleExecutionAborted(PUnitError):
    """A sample body raised and the exception policy aborts the whole run.

    The original exception is chained as ``__cause__``. `summary`, when
    given, is the run's progress at the point of abort and is appended to
    the message.
    """

    def __init__(
        self, sample_index: int, cause: BaseException, summary: Optional[str] = None
    ) -> None:
        self.sample_index = sample_index
        self.cause = cause
        self.summary = summary
        message = (
            f"Test aborted due to exception in sample {sample_index}: "
            f"{type(cause).__name__}: {cause}"
        )
        if summary:
            message = f"{message}\n{summary}"
        super().__init__(message)
