# File: backend/tests/test_runner.py
# Version: v0.2.0
"""
Progressive design sessions: preview then final, last-writer-wins supersession.
"""
import asyncio

import pytest

from backend.app.core.jobs.runner import DesignSession, DesignUpdate, SessionRegistry
from backend.app.core.primer.designer import DesignEngine
from backend.app.core.primer.mutations import DesignSpecification

pytestmark = pytest.mark.asyncio


async def test_stream_yields_preview_then_final(template60, deletion_spec, relaxed_options):
    session = DesignSession(relaxed_options)
    phases = []
    async for update in session.stream(template60, deletion_spec):
        phases.append(update.phase)
        assert update.generation == 1
        assert update.result is not None
    assert phases == ["preview", "final"]
    assert session.latest.phase == "final"
    assert session.latest.result.search == "exhaustive"


async def test_newer_submission_supersedes_older(template60, deletion_spec, relaxed_options):
    session = DesignSession(relaxed_options)
    g1 = session.submit(template60, deletion_spec)
    first = session.updates(g1)
    g2 = session.submit(template60, DesignSpecification(24, 24, "GAATTC"))
    assert (g1, g2) == (1, 2)

    latest = await session.wait()
    assert latest.generation == g2
    assert latest.phase == "final"
    assert latest.result.edit["kind"] == "insertion"

    assert first.get_nowait() == DesignUpdate(g1, "cancelled")
    assert first.empty()
    seen = []
    while not session.updates(g2).empty():
        seen.append(session.updates(g2).get_nowait())
    assert [u.phase for u in seen] == ["preview", "final"]
    with pytest.raises(KeyError):
        session.updates(g1)


async def test_concurrent_streams_on_one_session(template60, deletion_spec, relaxed_options):
    session = DesignSession(relaxed_options)

    async def collect(spec):
        return [u async for u in session.stream(template60, spec)]

    older = asyncio.ensure_future(collect(deletion_spec))
    await asyncio.sleep(0)
    newer = asyncio.ensure_future(collect(DesignSpecification(24, 24, "GAATTC")))
    first, second = await asyncio.wait_for(asyncio.gather(older, newer), timeout=120)

    assert all(u.generation == 1 for u in first)
    assert first[-1].phase == "cancelled"
    assert [u.phase for u in second] == ["preview", "final"]
    assert all(u.generation == 2 for u in second)
    assert session.latest.result.edit["kind"] == "insertion"


async def _drain(stream):
    return [u async for u in stream]


async def test_unexpected_crash_ends_the_stream(template60, deletion_spec, relaxed_options, monkeypatch):
    def explode(self, template, spec, exhaustive=None):
        raise RuntimeError("folder blew up")

    monkeypatch.setattr(DesignEngine, "design", explode)
    session = DesignSession(relaxed_options)
    updates = await asyncio.wait_for(_drain(session.stream(template60, deletion_spec)), timeout=10)
    assert len(updates) == 1
    assert updates[0].phase == "error"
    assert updates[0].error == "RuntimeError: folder blew up"
    assert session.latest is updates[0]


async def test_stale_updates_are_dropped(relaxed_options):
    session = DesignSession(relaxed_options)
    session._generation = 3
    assert session._publish(DesignUpdate(2, "final")) is False
    assert session.latest is None
    assert session._publish(DesignUpdate(3, "preview")) is True
    assert session.latest.phase == "preview"


async def test_design_error_is_published(template60, relaxed_options):
    session = DesignSession(relaxed_options)
    updates = [u async for u in session.stream(template60, DesignSpecification(100, 120, ""))]
    assert len(updates) == 1
    assert updates[0].phase == "error"
    assert "outside" in updates[0].error
    assert updates[0].to_dict()["result"] is None


async def test_registry_reuses_sessions():
    registry = SessionRegistry()
    sid, first = registry.get_or_create()
    assert sid
    same_sid, again = registry.get_or_create(sid)
    assert same_sid == sid and again is first
    registry.drop(sid)
    _, fresh = registry.get_or_create(sid)
    assert fresh is not first
