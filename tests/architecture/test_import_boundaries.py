"""
Layer boundaries between the office packages.

1. office_kernel/** never imports office_engines, office_config or
   office_services.  The kernel never depends upward.
2. office_engines/** is pure: no SQLAlchemy, no config, no services.  It
   may use the kernel's exceptions and logging only.
3. office_kernel/domain/** does no I/O: no SQLAlchemy.
4. office_config/** never imports office_services.

These tests read source code via AST and import nothing.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in a file."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            results.append((node.lineno, node.module))
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(f"{prefix}.")


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if any(_matches(module, prefix) for prefix in forbidden):
                found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelBoundary:

    def test_kernel_has_no_upward_dependencies(self):
        violations = _violations(
            "office_kernel", ("office_engines", "office_config", "office_services")
        )
        assert not violations, "office_kernel imports upward:\n" + "\n".join(violations)

    def test_domain_is_pure(self):
        violations = _violations("office_kernel/domain", ("sqlalchemy", "psycopg2", "yaml"))
        assert not violations, "office_kernel.domain does I/O:\n" + "\n".join(violations)


class TestEngineBoundary:

    ALLOWED_KERNEL_MODULES = ("office_kernel.exceptions", "office_kernel.logging_config")

    def test_engines_are_pure(self):
        violations = _violations(
            "office_engines", ("sqlalchemy", "office_config", "office_services")
        )
        assert not violations, "office_engines must stay pure:\n" + "\n".join(violations)

    def test_engines_use_only_kernel_errors_and_logging(self):
        violations = []
        for path in _python_files("office_engines"):
            for lineno, module in _extract_imports(path):
                if _matches(module, "office_kernel") and module not in self.ALLOWED_KERNEL_MODULES:
                    violations.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
        assert not violations, "\n".join(violations)


class TestConfigBoundary:

    def test_config_does_not_import_services(self):
        violations = _violations("office_config", ("office_services",))
        assert not violations, "\n".join(violations)

    def test_packages_exist(self):
        for package in ("office_kernel", "office_engines", "office_config", "office_services"):
            assert (ROOT / package / "__init__.py").is_file(), package
