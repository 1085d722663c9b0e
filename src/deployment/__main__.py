"""Standalone CLI entry point for the rollout orchestrator."""

import sys

from src.deployment.cli import main

if __name__ == "__main__":
    sys.exit(main())
