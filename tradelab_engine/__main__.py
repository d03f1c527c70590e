"""Allow ``python -m tradelab_engine``."""

import sys

from tradelab_engine.cli import main

sys.exit(main())
