"""Allow ``python -m setlist_sync.cli`` execution."""

import sys

from setlist_sync.cli.sync import main

sys.exit(main())
