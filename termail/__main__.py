"""Allow `python -m termail`."""

import sys

from .cli import main

sys.exit(main())
