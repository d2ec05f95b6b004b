import sys

from pgindex.cli import main

sys.exit(main())
