"""
Layer boundaries, checked from source via AST.

1. workforce_kernel/** may NOT import workforce_services or workforce_config.
   The kernel never depends upward.
2. workforce_config/** may import only the kernel's exception types.
3. Kernel services never commit; the transaction coordinator owns commits.
"""

import ast
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((REPO_ROOT / package).rglob("*.py"))


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


class TestKernelNoUpwardDependencies:
    FORBIDDEN_PREFIXES = ("workforce_services", "workforce_config")

    def test_kernel_does_not_import_upper_layers(self):
        violations = [
            f"{path.relative_to(REPO_ROOT)}:{line} imports {module}"
            for path in _python_files("workforce_kernel")
            for line, module in _extract_imports(path)
            if module.startswith(self.FORBIDDEN_PREFIXES)
        ]
        assert violations == []


class TestConfigDependencies:
    def test_config_uses_only_kernel_exceptions(self):
        violations = [
            f"{path.relative_to(REPO_ROOT)}:{line} imports {module}"
            for path in _python_files("workforce_config")
            for line, module in _extract_imports(path)
            if module.startswith(("workforce_kernel", "workforce_services"))
            and module != "workforce_kernel.exceptions"
        ]
        assert violations == []


class TestKernelServicesNeverCommit:
    def test_no_commit_calls_in_kernel_services(self):
        offenders = []
        for path in _python_files("workforce_kernel/services"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr == "commit"
                ):
                    offenders.append(f"{path.relative_to(REPO_ROOT)}:{node.lineno}")
        assert offenders == []
