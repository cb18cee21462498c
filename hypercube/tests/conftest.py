from __future__ import annotations

import logging
import sys
from pathlib import Path


def pytest_configure() -> None:
    """Make the in-tree package importable and route its debug records.

    The tests sit inside the package (``hypercube/tests``); when pytest picks
    ``hypercube/`` as rootdir, ``import hypercube`` needs the checkout root on
    ``sys.path``. Package loggers are lowered to DEBUG so the log statements
    on the fitting and optimization paths are formatted during the run.
    """
    checkout = str(Path(__file__).resolve().parent.parent.parent)
    if checkout not in sys.path:
        sys.path.insert(0, checkout)
    logging.getLogger("hypercube").setLevel(logging.DEBUG)
