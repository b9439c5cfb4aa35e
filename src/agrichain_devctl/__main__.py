"""Allow running the launcher with ``python -m agrichain_devctl``."""

import sys

from .cli.main import main

if __name__ == "__main__":
    sys.exit(main())
