"""Allow ``python -m staticstack``."""

import sys

from staticstack.main import main

if __name__ == "__main__":
    sys.exit(main())
