import sys

from p2pfuzz.main import main

sys.exit(main())
