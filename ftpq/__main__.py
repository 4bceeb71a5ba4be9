"""Allow running ftpq with python -m ftpq."""

import sys

from .main import main

sys.exit(main())
