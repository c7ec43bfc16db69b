"""Entry point for ``python -m instantrpc``."""

import sys

from instantrpc.cli import main

if __name__ == "__main__":
    sys.exit(main())
