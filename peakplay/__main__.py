import sys

from peakplay.cli import main

sys.exit(main())
