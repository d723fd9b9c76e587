"""Allow running the package as a module: python -m tranche_economics"""

import sys

from tranche_economics.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
