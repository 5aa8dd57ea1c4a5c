import os
import sys

import pytest

# Project root must be importable for the `src.*` namespace
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Extra arguments are passed through, e.g. `python run_tests.py -k scenarios`
exit_code = pytest.main(["tests", "-v", *sys.argv[1:]])
sys.exit(exit_code)
