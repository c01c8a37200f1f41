"""
punit.baseline.footprint
========================

Footprint: the identity bucket a baseline belongs to.

The footprint hashes the use-case id, the factors (sorted by name) and the
*names* of the declared covariates (in declaration order)::

    usecase:<id>\\n
    factor:<k>=<v>\\n        (sorted by k)
    covariate:<key>\\n       (declaration order)

and keeps the first 8 hex characters of the SHA-256 digest. Covariate values
never enter the footprint; they are compared later, during selection.

Examples
--------
>>> from punit.baseline.footprint import compute_footprint
>>> from punit.covariates.model import CovariateDeclaration
>>> decl = CovariateDeclaration.of(legacy_custom=["model"])
>>> a = compute_footprint("Checkout", {"a": 1, "b": 2}, decl)
>>> a == compute_footprint("Checkout", {"b": 2, "a": 1}, decl), len(a)
(True, 8)
>>> a == compute_footprint("Checkout", {"a": 1, "b": 3}, decl)
False
"""

from __future__ import annotations
from typing import Any, Mapping, Optional

from punit.core.hashing import short_hash
from punit.core.names import Footprint
from punit.covariates.model import CovariateDeclaration

FOOTPRINT_LENGTH = 8


def footprint_source(
    use_case_id: str,
    factors: Optional[Mapping[str, Any]] = None,
    declaration: CovariateDeclaration = CovariateDeclaration.EMPTY,
) -> str:
    """The exact text that is hashed into a footprint."""
    if use_case_id is None:
        raise ValueError("use_case_id must not be None")
    parts = [f"usecase:{use_case_id}\n"]
    for key in sorted(factors or {}):
        parts.append(f"factor:{key}={factors[key]}\n")
    parts.extend(f"covariate:{key}\n" for key in declaration.all_keys())
    return "".join(parts)


def compute_footprint(
    use_case_id: str,
    factors: Optional[Mapping[str, Any]] = None,
    declaration: CovariateDeclaration = CovariateDeclaration.EMPTY,
) -> Footprint:
    return Footprint(
        short_hash(footprint_source(use_case_id, factors, declaration), FOOTPRINT_LENGTH)
    )
