import sys

from chartpipe.cli import main

sys.exit(main())
