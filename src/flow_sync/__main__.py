from __future__ import annotations

import sys

from flow_sync.cli import main


sys.exit(main())
