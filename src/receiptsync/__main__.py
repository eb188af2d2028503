import sys

from receiptsync.cli import main

sys.exit(main())
