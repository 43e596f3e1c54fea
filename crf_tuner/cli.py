"""CLI entry point for the crf-tuner package."""

import sys


def main():
    """Entry point for the crf-tuner command."""
    from crf_tuner.core.main import main as run
    sys.exit(run())


if __name__ == "__main__":
    main()
