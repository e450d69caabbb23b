import sys

from segment_blast.cli import main

sys.exit(main())
