"""
Entry point for running Compute Flow as a module.

Usage:
    python -m compute_flow
"""

import sys

from compute_flow.main import main

if __name__ == "__main__":
    sys.exit(main())
