"""
Named-stage pipelines for multi-step jobs.

A job that chains several steps (resolve a window, sync a batch, advance a
watermark) declares them as an ordered list of Stage objects. Each stage
receives the previous stage's output; the first failure stops the pipeline
and is re-raised as StageFailed naming the stage.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class StageFailed(Exception):
    """A pipeline stage raised; the original error is chained as __cause__."""

    def __init__(self, stage: str, error: Exception):
        super().__init__(f"Stage '{stage}' failed: {error}")
        self.stage = stage
        self.error = error


class Stage:
    """A named pipeline step taking the previous stage's output."""

    def __init__(self, name: str, func: Callable[[Any], Any]):
        self.name = name
        self.func = func

    def __call__(self, value: Any) -> Any:
        return self.func(value)

    def __repr__(self) -> str:
        return f"Stage({self.name!r})"


class Pipeline:
    """Runs stages in order, threading each output into the next input."""

    def __init__(self, name: str, stages: list[Stage]):
        if not stages:
            raise ValueError("A pipeline needs at least one stage")
        self.name = name
        self.stages = stages

    def run(self, initial: Any = None) -> Any:
        value = initial
        for stage in self.stages:
            logger.info(f"[{self.name}] stage '{stage.name}' starting")
            started = time.monotonic()
            try:
                value = stage(value)
            except Exception as e:
                logger.error(f"[{self.name}] stage '{stage.name}' failed: {e}")
                raise StageFailed(stage.name, e) from e
            logger.info(
                f"[{self.name}] stage '{stage.name}' finished in "
                f"{time.monotonic() - started:.2f}s"
            )
        return value
