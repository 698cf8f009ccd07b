"""Allow `python -m bgtasks` to run the developer CLI."""

import asyncio
import sys

from bgtasks.main import main

sys.exit(asyncio.run(main()))
