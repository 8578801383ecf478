# File: backend/tests/conftest.py
# Version: v0.3.0
"""
Test bootstrap.

- Ensures the project root is on sys.path so 'backend.*' imports work without an
  editable install.
- Points the database and the editable design-options file at a temporary
  directory BEFORE any backend module reads Settings.
- Shared fixtures: a 60 bp template built from 4-base blocks with exactly two
  G/C each (every 18+ nt window is 44-56 % GC), and relaxed design options.
"""
import os
import random
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]  # repo root (../.. from this file)
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TMP = Path(tempfile.mkdtemp(prefix="primercraft-tests-"))
os.environ.setdefault("DB_URL", f"sqlite:///{_TMP / 'test.db'}")
os.environ.setdefault("PRIMER_PARAMS_PATH", str(_TMP / "primers_param.json"))

from backend.app.core.primer.mutations import DesignSpecification  # noqa: E402
from backend.app.core.primer.parameters import DesignOptions  # noqa: E402

BLOCKS = [
    "ACGT", "GATC", "CTAG", "TGCA", "AGCT", "TCGA", "GTAC", "CATG",
    "ACTG", "GTCA", "AGTC", "TGAC", "CAGT", "GACT", "CTGA",
]

# lacZ alpha 5' region
LACZ_80 = "ATGACCATGATTACGGATTCACTGGCCGTCGTTTTACAACGTCGTGACTGGGAAAACCCTGGCGTTACCCAACTTAATCG"


@pytest.fixture(scope="session", autouse=True)
def _schema():
    from backend.app.db.maintenance import ensure_schema
    from backend.app.db.session import engine

    ensure_schema(engine)
    yield


@pytest.fixture
def template60() -> str:
    return "".join(BLOCKS)


@pytest.fixture
def block_template():
    """Seeded shuffle of the 4-base blocks: a random 60 bp template at 50 % GC."""
    def make(seed: int) -> str:
        blocks = list(BLOCKS)
        random.Random(seed).shuffle(blocks)
        return "".join(blocks)
    return make


@pytest.fixture
def lacz80() -> str:
    return LACZ_80


@pytest.fixture
def deletion_spec() -> DesignSpecification:
    return DesignSpecification(20, 40, "")


@pytest.fixture
def relaxed_options() -> DesignOptions:
    """Tm bounds wide enough that only length / GC / geometry decide feasibility."""
    return DesignOptions(primerTmMin=40.0, primerTmMax=80.0)
