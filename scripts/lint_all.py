#!/usr/bin/env python3
"""Run all linting, formatting, and testing checks.

This script runs black, isort, and pytest in sequence to ensure code quality.
With --mpi it also runs the MPI tests under mpiexec so the collectives are
exercised across real processes. Can be run from the project root directory.

Usage:
    python scripts/lint_all.py [--check] [--skip-tests] [--mpi N]

Options:
    --check: Only check formatting (don't modify files)
    --skip-tests: Skip running pytest
    --mpi N: Also run tests/test_mpi.py on N MPI processes
"""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

SOURCE_DIRS = ["src", "tests", "scripts"]


def run_command(cmd: List[str], description: str) -> bool:
    """Run a command and return True if successful.

    Args:
        cmd: Command to run as list of strings
        description: Human-readable description of what's being run

    Returns:
        True if command succeeded (exit code 0), False otherwise
    """
    print(f"\n{'='*60}")
    print(f"Running: {description}")
    print(f"Command: {' '.join(cmd)}")
    print(f"{'='*60}\n")

    try:
        result = subprocess.run(cmd, cwd=PROJECT_ROOT, check=False)
    except FileNotFoundError as e:
        print(f"\n✗ Error: {e}")
        print("  Make sure the command is installed and in your PATH\n")
        return False

    if result.returncode == 0:
        print(f"\n✓ {description} passed\n")
        return True

    print(f"\n✗ {description} failed (exit code: {result.returncode})\n")
    return False


def run_formatter(
    name: str, check_cmd: List[str], fix_cmd: List[str], check_mode: bool
) -> bool:
    """Check formatting with one tool, fixing in place unless in check mode."""
    if run_command(check_cmd, f"{name} (check)"):
        return True
    if check_mode:
        return False

    print(f"Attempting to auto-fix with {name}...")
    return run_command(fix_cmd, f"{name} (auto-fix)")


def main() -> int:
    """Main entry point for linting script.

    Returns:
        Exit code: 0 if all checks passed, 1 otherwise
    """
    parser = argparse.ArgumentParser(
        description="Run linting, formatting, and testing checks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only check formatting (don't modify files)",
    )
    parser.add_argument(
        "--skip-tests",
        action="store_true",
        help="Skip running pytest",
    )
    parser.add_argument(
        "--mpi",
        type=int,
        default=0,
        metavar="N",
        help="Also run the MPI tests on N processes with mpiexec",
    )
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("ClusterRefine Code Quality Checks")
    print("=" * 60)

    results = [
        run_formatter(
            "isort",
            ["isort", *SOURCE_DIRS, "--check-only", "--diff"],
            ["isort", *SOURCE_DIRS],
            args.check,
        ),
        run_formatter(
            "black",
            ["black", *SOURCE_DIRS, "--check"],
            ["black", *SOURCE_DIRS],
            args.check,
        ),
    ]

    if not args.skip_tests:
        results.append(run_command(["pytest", "tests/", "-v"], "pytest (tests)"))

    if args.mpi > 0:
        mpi_cmd = [
            "mpiexec", "-n", str(args.mpi),
            sys.executable, "-m", "pytest", "tests/test_mpi.py", "-q",
        ]
        results.append(run_command(mpi_cmd, f"pytest under mpiexec ({args.mpi} ranks)"))

    print("\n" + "=" * 60)
    if all(results):
        print("✓ All checks passed!")
        print("=" * 60 + "\n")
        return 0

    print("✗ Some checks failed. Please fix the issues above.")
    print("=" * 60 + "\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
