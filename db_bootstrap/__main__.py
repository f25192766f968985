from __future__ import annotations

import sys

from db_bootstrap.cli import main


sys.exit(main())
