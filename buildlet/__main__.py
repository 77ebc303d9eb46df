"""Allow ``python -m buildlet``."""

import sys

from buildlet.cli import main

if __name__ == "__main__":
    sys.exit(main())
