"""
LocalRepo Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

import asyncio
import time
from collections.abc import Callable
from pathlib import Path

import pytest


MODULE_BAZEL = '''module(
    name = "gazelle_kotlin",
    version = "0.0.1",
)

bazel_dep(name = "gazelle", version = "0.39.0")
bazel_dep(name = "rules_go", version = "0.50.1", repo_name = "io_bazel_rules_go")

go_deps = use_extension("@gazelle//:extensions.bzl", "go_deps")
go_deps.from_file(go_mod = "//:go.mod")
use_repo(go_deps, "com_github_bazel_contrib_rules_jvm")
go_deps.archive_override(
    path = "github.com/bazel-contrib/rules_jvm",
    sha256 = "ab5be376d91240ef93cb4f3a6635997d5982b63ee72a49a5c3b8662bdeeba601",
    urls = [
        "http://localhost:8674/by-sha256/.zip",
    ],
)

non_module_dependencies = use_extension("//:extensions.bzl", "non_module_dependencies")
use_repo(non_module_dependencies, "tree-sitter-kotlin")
'''


@pytest.fixture
def module_bazel_source() -> str:
    """A MODULE.bazel file with one archive_override declaration."""
    return MODULE_BAZEL


@pytest.fixture
def module_file(tmp_path: Path) -> Path:
    """MODULE.bazel written to disk, outside any watched directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    path = workspace / "MODULE.bazel"
    path.write_text(MODULE_BAZEL)
    return path


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """Create a small directory tree to archive and watch."""
    root = tmp_path / "rules_jvm"
    root.mkdir()

    (root / "go.mod").write_text("module github.com/bazel-contrib/rules_jvm\n")
    (root / "BUILD.bazel").write_text('exports_files(["go.mod"])\n')

    pkg = root / "java" / "gazelle"
    pkg.mkdir(parents=True)
    (pkg / "lang.go").write_text("package gazelle\n")
    (pkg / "resolve.go").write_text("package gazelle\n\nfunc Resolve() {}\n")

    git = root / ".git"
    git.mkdir()
    (git / "HEAD").write_text("ref: refs/heads/main\n")

    return root


@pytest.fixture
def wait_for() -> Callable:
    """Poll a condition from async code until it holds or times out."""

    async def _wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            await asyncio.sleep(0.02)
        return condition()

    return _wait_for
