"""
punit.baseline.naming
=====================

Baseline filenames.

Current form::

    {UseCase}.{method}-{YYYYMMDD-HHMM}-{fp4}-{cov1}-{cov2}....yaml

Legacy form::

    {useCaseId}-{fp4}-{cov1}....yaml

Names are sanitized to ``[A-Za-z0-9_-]``; every hash is cut to 4 characters.
Covariate hashes cover each (key, value) pair in profile order, excluding
INFORMATIONAL covariates in the current form.

Examples
--------
>>> from datetime import datetime
>>> from punit.baseline.naming import BaselineFileNamer
>>> from punit.covariates.model import CovariateProfile
>>> namer = BaselineFileNamer()
>>> namer.legacy_filename("Checkout", "a1b2c3d4")
'Checkout-a1b2.yaml'
>>> name = namer.filename("Checkout", "measure", datetime(2026, 1, 10, 14, 5),
...                       "a1b2c3d4", CovariateProfile.builder().put("model", "gpt-4").build())
>>> name.startswith("Checkout.measure-20260110-1405-a1b2-"), name.endswith(".yaml")
(True, True)
>>> namer.parse("Checkout-a1b2-ffff.yaml").covariate_hashes
('ffff',)
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from punit.covariates.model import (
    CovariateCategory,
    CovariateDeclaration,
    CovariateProfile,
)

HASH_LENGTH = 4
TIMESTAMP_FORMAT = "%Y%m%d-%H%M"
_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize(name: str) -> str:
    return _UNSAFE.sub("_", name)


def _truncate(value: str) -> str:
    return value[:HASH_LENGTH]


@dataclass(frozen=True)
class ParsedFilename:
    use_case_name: str
    footprint_hash: str
    covariate_hashes: Tuple[str, ...] = ()

    @property
    def covariate_count(self) -> int:
        return len(self.covariate_hashes)

    def has_covariates(self) -> bool:
        return bool(self.covariate_hashes)


class BaselineFileNamer:
    def filename(
        self,
        use_case_name: str,
        method_name: str,
        timestamp: datetime,
        footprint_hash: str,
        profile: CovariateProfile,
        declaration: Optional[CovariateDeclaration] = None,
    ) -> str:
        """Current-form filename; `timestamp` is rendered in its own zone."""
        parts = [
            f"{sanitize(use_case_name)}.{sanitize(method_name)}",
            timestamp.strftime(TIMESTAMP_FORMAT),
            _truncate(footprint_hash),
        ]
        parts.extend(
            _truncate(h)
            for h in self._non_informational_hashes(
                profile, declaration or CovariateDeclaration.EMPTY
            )
        )
        return "-".join(parts) + ".yaml"

    def legacy_filename(
        self,
        use_case_name: str,
        footprint_hash: str,
        profile: Optional[CovariateProfile] = None,
    ) -> str:
        parts = [sanitize(use_case_name), _truncate(footprint_hash)]
        if profile is not None:
            parts.extend(_truncate(h) for h in profile.compute_value_hashes())
        return "-".join(parts) + ".yaml"

    @staticmethod
    def _non_informational_hashes(
        profile: CovariateProfile, declaration: CovariateDeclaration
    ) -> List[str]:
        hashes = []
        for key in profile.ordered_keys:
            if declaration.get_category(key) is CovariateCategory.INFORMATIONAL:
                continue
            value = profile.get(key)
            if value is not None:
                hashes.append(profile.compute_single_value_hash(key, value))
        return hashes

    def parse(self, filename: str) -> ParsedFilename:
        """Split a filename on ``-`` into use case, footprint and covariate hashes.

        For current-form names the first part is ``{UseCase}.{method}`` and the
        timestamp occupies the next two parts; both forms are recognised.
        """
        if filename is None:
            raise ValueError("filename must not be None")
        name = filename
        for suffix in (".yaml", ".yml"):
            if name.endswith(suffix):
                name = name[: -len(suffix)]
                break
        parts = name.split("-")
        if len(parts) < 2:
            raise ValueError(f"Invalid baseline filename format: {filename}")
        if (
            len(parts) >= 4
            and "." in parts[0]
            and re.fullmatch(r"\d{8}", parts[1])
            and re.fullmatch(r"\d{4}", parts[2])
        ):
            return ParsedFilename(parts[0].split(".", 1)[0], parts[3], tuple(parts[4:]))
        return ParsedFilename(parts[0], parts[1], tuple(parts[2:]))
