"""Allow ``python -m ragsync``."""

import sys

from ragsync.cli import main

sys.exit(main())
