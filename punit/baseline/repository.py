"""
punit.baseline.repository
=========================

Scans a directory of stored baselines for a use case.

Files match a use case when their name starts with the sanitized id followed
by ``.`` or ``-`` and ends in ``.yaml``/``.yml``. Each match is loaded through
the integrity-checking codec; files that fail to load are logged and skipped
so one corrupt baseline cannot hide the others. Candidates are rescanned on
every call; nothing is cached here.
"""

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Union

import structlog

from punit.baseline.naming import sanitize
from punit.baseline.selection import BaselineCandidate
from punit.core.errors import SpecificationError
from punit.spec import codec
from punit.spec.registry import detect_default_root

logger = structlog.get_logger()


class BaselineRepository:
    def __init__(self, specs_root: Optional[Union[str, Path]] = None) -> None:
        self.specs_root = Path(specs_root) if specs_root is not None else detect_default_root()

    def find_candidates(
        self, use_case_id: str, expected_footprint: Optional[str] = None
    ) -> List[BaselineCandidate]:
        """Candidates for `use_case_id`, restricted to `expected_footprint` when given.

        Legacy baselines without a footprint are only returned when no
        footprint is expected.
        """
        if use_case_id is None:
            raise ValueError("use_case_id must not be None")
        if not self.specs_root.is_dir():
            return []
        prefix = sanitize(use_case_id)
        candidates: List[BaselineCandidate] = []
        for path in sorted(self.specs_root.iterdir()):
            if not self._is_yaml(path):
                continue
            if not (path.name.startswith(prefix + ".") or path.name.startswith(prefix + "-")):
                continue
            candidate = self._load_candidate(path, expected_footprint)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def find_all_candidates(self, use_case_id: str) -> List[BaselineCandidate]:
        return self.find_candidates(use_case_id, None)

    def find_available_footprints(self, use_case_id: str) -> List[str]:
        footprints: List[str] = []
        for candidate in self.find_all_candidates(use_case_id):
            if candidate.footprint not in footprints:
                footprints.append(candidate.footprint)
        return footprints

    @staticmethod
    def _is_yaml(path: Path) -> bool:
        return path.is_file() and path.suffix.lower() in (".yaml", ".yml")

    def _load_candidate(
        self, path: Path, expected_footprint: Optional[str]
    ) -> Optional[BaselineCandidate]:
        try:
            spec = codec.load(path)
        except (SpecificationError, OSError) as exc:
            logger.warning("baseline_skipped", path=str(path), error=str(exc))
            return None

        footprint = spec.footprint or ""
        if not footprint:
            if expected_footprint is not None:
                return None
        elif expected_footprint is not None and footprint != expected_footprint:
            return None

        return BaselineCandidate(
            filename=path.name,
            footprint=footprint,
            covariate_profile=spec.covariate_profile,
            generated_at=spec.generated_at,
            spec=spec,
        )
