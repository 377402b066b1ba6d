#!/usr/bin/env python3
"""
LocalRepo Server Script.

Serves a directory as a zip archive over HTTP and rewrites the matching
declaration in a MODULE.bazel or WORKSPACE file on every change.
Requires Python 3.11+.

Usage:
    python scripts/serve_local_repo.py \\
        --input /path/to/rules_jvm \\
        --module_file /path/to/MODULE.bazel \\
        --import_path github.com/bazel-contrib/rules_jvm
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from publisher.cli import main


if __name__ == "__main__":
    sys.exit(main())
