# File: backend/tests/test_db.py
# Version: v0.1.0
"""
Schema creation and design-run persistence on an in-memory SQLite engine.
"""
from sqlalchemy.orm import sessionmaker

from backend.app.db.maintenance import ensure_schema
from backend.app.db.models import DesignOutcome, DesignRun, RunStatus
from backend.app.db.session import make_engine


def test_ensure_schema_is_idempotent():
    engine = make_engine("sqlite://")
    first = ensure_schema(engine)
    assert "created table design_runs" in first
    assert "created table design_outcomes" in first
    assert ensure_schema(engine) == ["all tables present"]


def test_run_with_outcome_roundtrip():
    engine = make_engine("sqlite://")
    ensure_schema(engine)
    Session = sessionmaker(bind=engine, future=True)
    with Session() as db:
        run = DesignRun(
            sequence_digest="0" * 64, sequence_len=60, circular=False,
            edit_start=20, edit_end=40, replacement="", options_json={"primerTmMin": 55.0},
        )
        db.add(run)
        db.flush()
        db.add(DesignOutcome(
            run_id=run.id, forward_seq="ACGT" * 5, reverse_seq="TGCA" * 5, forward_tm=60.0, reverse_tm=61.0,
            composite_score=80.0, effective_score=80.0, quality_tier="good", warnings_json=[], result_json={"ok": True},
        ))
        db.commit()
        run_id = run.id

    with Session() as db:
        stored = db.get(DesignRun, run_id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.created_at is not None
        assert stored.outcome.quality_tier == "good"
        assert stored.outcome.result_json == {"ok": True}
