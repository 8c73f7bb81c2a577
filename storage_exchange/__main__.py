"""Allow ``python -m storage_exchange``."""

import sys

from storage_exchange.cli import main

sys.exit(main())
