# File: backend/app/core/jobs/runner.py
# Version: v0.6.0
"""
Progressive design runner: quick preview, then exhaustive final.

- `DesignSession.submit()` starts a cancellable asyncio task for one request and
  returns its generation number. A newer submission cancels the older task.
- The CPU-bound search runs in the default executor; each phase is published as a
  `DesignUpdate` onto the asyncio.Queue of its generation. A superseded generation
  gets a final `cancelled` update on its own queue. Unexpected crashes are logged
  and published as `error`, so every stream terminates.
- Only updates of the current generation are published (last writer wins); stale
  completions are dropped, never merged.
- `DesignSession.stream()` yields the updates of the generation it submitted:
  preview then final, ending early on error or cancelled.

Sessions are kept per client id by `SessionRegistry` so that rapid resubmissions
from one UI supersede each other.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Union

from backend.app.core.primer.designer import DesignEngine, DesignResult
from backend.app.core.primer.errors import PrimerDesignError
from backend.app.core.primer.folding import DEFAULT_FOLDER, StructureFolder
from backend.app.core.primer.mutations import DesignSpecification, Template
from backend.app.core.primer.parameters import DesignOptions

log = logging.getLogger(__name__)

TERMINAL_PHASES = ("final", "error", "cancelled")


@dataclass(frozen=True)
class DesignUpdate:
    generation: int
    phase: str                         # 'preview' | 'final' | 'error' | 'cancelled'
    result: Optional[DesignResult] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "phase": self.phase,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


class DesignSession:
    def __init__(self, options: Optional[DesignOptions] = None, folder: StructureFolder = DEFAULT_FOLDER) -> None:
        self.options = options
        self.folder = folder
        self.latest: Optional[DesignUpdate] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        # one queue per live generation; streams hold their own reference
        self._queues: Dict[int, asyncio.Queue] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def submit(
        self,
        template: Union[str, Template],
        spec: DesignSpecification,
        options: Optional[DesignOptions] = None,
    ) -> int:
        """Start a new two-phase computation; supersedes any running one."""
        previous = self._generation
        self._generation += 1
        gen = self._generation
        self._queues[gen] = asyncio.Queue()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._deliver(DesignUpdate(previous, "cancelled"))
        # older generations never receive another update
        for old in [g for g in self._queues if g < gen]:
            del self._queues[old]
        engine = DesignEngine(options or self.options, self.folder)
        self._task = asyncio.create_task(self._run(gen, engine, template, spec))
        return gen

    def updates(self, generation: int) -> asyncio.Queue:
        """Queue of updates for `generation` (only the current one is retained)."""
        return self._queues[generation]

    async def _run(self, gen: int, engine: DesignEngine, template, spec: DesignSpecification) -> None:
        loop = asyncio.get_running_loop()
        try:
            quick = await loop.run_in_executor(None, engine.design, template, spec, False)
            self._publish(DesignUpdate(gen, "preview", quick))
            final = await loop.run_in_executor(None, engine.design, template, spec, True)
            self._publish(DesignUpdate(gen, "final", final))
        except PrimerDesignError as e:
            self._publish(DesignUpdate(gen, "error", error=str(e)))
        except Exception as e:  # a crashed search still ends its stream
            log.exception("Design generation %d crashed", gen)
            self._publish(DesignUpdate(gen, "error", error=f"{type(e).__name__}: {e}"))

    def _deliver(self, update: DesignUpdate) -> None:
        queue = self._queues.get(update.generation)
        if queue is not None:
            queue.put_nowait(update)

    def _publish(self, update: DesignUpdate) -> bool:
        if update.generation != self._generation:
            log.debug("Dropping stale %s update (generation %d < %d)", update.phase, update.generation, self._generation)
            return False
        self.latest = update
        self._deliver(update)
        return True

    async def wait(self) -> Optional[DesignUpdate]:
        """Wait for the current task to finish; returns the latest published update."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        return self.latest

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stream(
        self,
        template: Union[str, Template],
        spec: DesignSpecification,
        options: Optional[DesignOptions] = None,
    ) -> AsyncIterator[DesignUpdate]:
        gen = self.submit(template, spec, options)
        queue = self._queues[gen]
        try:
            while True:
                update = await queue.get()
                yield update
                if update.phase in TERMINAL_PHASES:
                    break
        finally:
            if self._queues.get(gen) is queue:
                del self._queues[gen]


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: Dict[str, DesignSession] = {}

    def get_or_create(self, session_id: Optional[str] = None, folder: StructureFolder = DEFAULT_FOLDER) -> tuple:
        sid = session_id or uuid.uuid4().hex[:12]
        if sid not in self._sessions:
            self._sessions[sid] = DesignSession(folder=folder)
        return sid, self._sessions[sid]

    def drop(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.cancel()


sessions = SessionRegistry()
