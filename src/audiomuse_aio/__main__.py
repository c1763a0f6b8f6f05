import sys

from audiomuse_aio.cli import main

sys.exit(main())
