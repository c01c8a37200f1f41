"""
Unit tests for specification lookup and caching.
"""

from __future__ import annotations

import threading

import pytest

from punit.core.errors import SpecificationIntegrityError, SpecificationNotFoundError
from punit.spec import codec, registry
from punit.spec.model import EmpiricalBasis, ExecutionSpecification
from punit.spec.registry import SpecificationRegistry, detect_default_root


@pytest.fixture
def specs_root(tmp_path):
    codec.write(
        ExecutionSpecification(
            use_case_id="ShoppingUseCase",
            empirical_basis=EmpiricalBasis(samples=500, successes=470),
        ),
        tmp_path / "ShoppingUseCase.yaml",
    )
    return tmp_path


# ─── Resolution ──────────────────────────────────────────────────────────────


class TestResolve:
    def test_resolves_by_use_case_id(self, specs_root):
        spec = SpecificationRegistry(specs_root).resolve("ShoppingUseCase")
        assert spec.baseline_successes == 470

    def test_legacy_version_suffix_is_stripped(self, specs_root):
        reg = SpecificationRegistry(specs_root)
        assert reg.resolve("ShoppingUseCase:v2") is reg.resolve("ShoppingUseCase")

    def test_loaded_once_and_cached(self, specs_root):
        reg = SpecificationRegistry(specs_root)
        first = reg.resolve("ShoppingUseCase")
        (specs_root / "ShoppingUseCase.yaml").unlink()
        assert reg.resolve("ShoppingUseCase") is first
        reg.clear_cache()
        with pytest.raises(SpecificationNotFoundError):
            reg.resolve("ShoppingUseCase")

    def test_concurrent_resolution_loads_one_instance(self, specs_root):
        reg = SpecificationRegistry(specs_root)
        results = []

        def work():
            results.append(reg.resolve("ShoppingUseCase"))

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len({id(spec) for spec in results}) == 1

    def test_missing_spec(self, tmp_path):
        with pytest.raises(SpecificationNotFoundError, match="Specification not found: Nope"):
            SpecificationRegistry(tmp_path).resolve("Nope")

    def test_yml_suffix_is_found(self, tmp_path):
        codec.write(ExecutionSpecification(use_case_id="Checkout"), tmp_path / "Checkout.yml")
        assert SpecificationRegistry(tmp_path).resolve("Checkout").use_case_id == "Checkout"

    def test_json_file_found_but_rejected(self, tmp_path):
        (tmp_path / "Checkout.json").write_text("{}", encoding="utf-8")
        reg = SpecificationRegistry(tmp_path)
        assert reg.exists("Checkout")
        with pytest.raises(SpecificationIntegrityError, match="Unsupported file format"):
            reg.resolve("Checkout")

    def test_tampered_file_is_rejected(self, specs_root):
        path = specs_root / "ShoppingUseCase.yaml"
        path.write_text(
            path.read_text(encoding="utf-8").replace("470", "499"), encoding="utf-8"
        )
        with pytest.raises(SpecificationIntegrityError):
            SpecificationRegistry(specs_root).resolve("ShoppingUseCase")


class TestExists:
    def test_exists(self, specs_root):
        reg = SpecificationRegistry(specs_root)
        assert reg.exists("ShoppingUseCase:v1")
        assert not reg.exists("Unknown")
        assert not reg.exists(None)


# ─── Default registry ────────────────────────────────────────────────────────


class TestDefaultRegistry:
    def test_detects_first_existing_root(self, tmp_path):
        missing, present = tmp_path / "a", tmp_path / "b"
        present.mkdir()
        assert detect_default_root([missing, present]) == present
        assert detect_default_root([missing]) == missing

    def test_singleton_and_reset(self):
        first = registry.default_registry()
        assert registry.default_registry() is first
        registry.reset()
        assert registry.default_registry() is not first
