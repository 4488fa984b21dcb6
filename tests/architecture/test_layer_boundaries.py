"""
Layer boundaries between config, engines and kernel.

1. billing_kernel/** may NOT import billing_config.  Tariffs and subsidy
   classes reach the kernel as plain engine inputs.

2. billing_engines/** are pure: no SQLAlchemy, no models, sessions,
   services or selectors, and no configuration loading.

3. No bare ``except:`` anywhere in the packages.

These tests read source code via AST and never import the modules.
"""

import ast
from pathlib import Path

from billing_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if any(module == p or module.startswith(f"{p}.") for p in forbidden):
                found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_config(self):
        violations = _violations("billing_kernel", FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, (
            "billing_kernel/** must not import configuration:\n" + "\n".join(violations)
        )


class TestEnginePurity:
    FORBIDDEN = (
        "sqlalchemy",
        "billing_config",
        "billing_kernel.db",
        "billing_kernel.models",
        "billing_kernel.services",
        "billing_kernel.selectors",
    )

    def test_engines_do_not_touch_persistence(self):
        violations = _violations("billing_engines", self.FORBIDDEN)
        assert not violations, (
            "billing_engines/** must stay pure:\n" + "\n".join(violations)
        )

    def test_engines_exist(self):
        names = {p.stem for p in _python_files("billing_engines")}
        assert {"tariff", "repactacion", "allocation", "ledger", "identity"} <= names


class TestNoBareExcept:
    def test_no_bare_except(self):
        offenders = []
        for package in ("billing_kernel", "billing_engines", "billing_config"):
            for path in _python_files(package):
                tree = ast.parse(path.read_text(), filename=str(path))
                for node in ast.walk(tree):
                    if isinstance(node, ast.ExceptHandler) and node.type is None:
                        offenders.append(f"  {path.relative_to(ROOT)}:{node.lineno}")
        assert not offenders, "bare except found:\n" + "\n".join(offenders)


class TestInvariantDeclaration:
    def test_invariants_declared(self):
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)
        assert KernelInvariant.CONSERVATION in ALL_KERNEL_INVARIANTS
        assert KernelInvariant.CUSTOMER_SERIALIZATION in ALL_KERNEL_INVARIANTS
