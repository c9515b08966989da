#!/usr/bin/env python3
"""Run the unit and API suites against an in-memory database with no provider keys."""

import argparse
import os
import subprocess
import sys

SUITES = {"unit": "tests/unit/", "api": "tests/api/"}


def setup_test_environment():
    os.environ.setdefault("TESTING", "true")
    os.environ.setdefault("ENVIRONMENT", "testing")
    os.environ.setdefault("TEST_DATABASE_URL", "sqlite+aiosqlite://")
    os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
    # Provider calls are faked in tests
    os.environ.setdefault("ANTHROPIC_API_KEY", "")
    os.environ.setdefault("OPENROUTER_API_KEY", "")
    os.environ.setdefault("SECRETS_FILE", "")


def pytest_command(paths, verbose=False, coverage=False):
    cmd = [sys.executable, "-m", "pytest", *paths, "--tb=short"]
    if verbose:
        cmd.extend(["-v", "-s"])
    if coverage:
        cmd.extend(["--cov=app", "--cov=models", "--cov-report=term-missing"])
    return cmd


def main():
    parser = argparse.ArgumentParser(description="Local Claude Chat backend test runner")
    parser.add_argument("suite", nargs="?", choices=[*SUITES, "all"], default="all", help="Suite to run")
    parser.add_argument("--specific", type=str, help="Run a specific test file or node id instead")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--coverage", action="store_true", help="Report coverage")
    args = parser.parse_args()

    setup_test_environment()

    if args.specific:
        paths = [args.specific]
    elif args.suite == "all":
        paths = list(SUITES.values())
    else:
        paths = [SUITES[args.suite]]

    return subprocess.call(pytest_command(paths, args.verbose, args.coverage))


if __name__ == "__main__":
    sys.exit(main())
