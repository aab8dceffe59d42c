"""
BaseStage — contract shared by every stage of report generation.

A stage receives a typed input, performs its task, and returns a typed
output.  Logging, timing, and error wrapping are handled by the base class
so stages only need to implement `_execute`.  Stages that talk to the Event
Store also override `_aexecute` and are driven through `arun`.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class StageLog:
    """Structured log entry produced by every stage run."""
    stage_name: str = ""
    status: str = "pending"          # pending | running | success | error | cancelled
    duration_seconds: float = 0.0
    messages: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseStage(ABC):
    """Abstract base for every stage in the pipeline."""

    name: str = "BaseStage"

    def __init__(self) -> None:
        self.log = StageLog(stage_name=self.name)

    # ── public entry points ──────────────────────────────────────────
    def run(self, input_data: Any) -> Any:
        """Execute the stage with timing, logging, and error handling."""
        start = self._begin()
        try:
            result = self._execute(input_data)
            self._succeed()
            return result
        except Exception as exc:
            self._fail(exc)
            raise
        finally:
            self.log.duration_seconds = round(time.perf_counter() - start, 3)

    async def arun(self, input_data: Any) -> Any:
        """Async counterpart of `run` for stages awaiting I/O."""
        start = self._begin()
        try:
            result = await self._aexecute(input_data)
            self._succeed()
            return result
        except BaseException as exc:
            if isinstance(exc, Exception):
                self._fail(exc)
            else:
                self.log.status = "cancelled"
                self._log(f"{self.name} cancelled")
            raise
        finally:
            self.log.duration_seconds = round(time.perf_counter() - start, 3)

    # ── subclasses implement these ───────────────────────────────────
    @abstractmethod
    def _execute(self, input_data: Any) -> Any:
        """Core logic — must be implemented by every stage."""
        ...

    async def _aexecute(self, input_data: Any) -> Any:
        return self._execute(input_data)

    # ── helpers ──────────────────────────────────────────────────────
    def _begin(self) -> float:
        self.log = StageLog(stage_name=self.name, status="running")
        self._log(f"{self.name} started")
        return time.perf_counter()

    def _succeed(self) -> None:
        self.log.status = "success"
        self._log(f"{self.name} completed successfully")

    def _fail(self, exc: Exception) -> None:
        self.log.status = "error"
        self.log.errors.append(str(exc))
        logger.exception("[%s] failed", self.name)

    def _log(self, message: str) -> None:
        self.log.messages.append(message)
        logger.info("[%s] %s", self.name, message)
