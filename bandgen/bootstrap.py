"""Wire the pipeline components together from one PipelineConfig."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from bandgen.config import PipelineConfig
from bandgen.models.records import utcnow
from bandgen.pipeline.executor import StageExecutor
from bandgen.pipeline.orchestrator import PipelineOrchestrator
from bandgen.pipeline.poller import StatusPoller
from bandgen.services.image_client import FalImageClient
from bandgen.services.llm_client import LanguageModelClient
from bandgen.services.task_client import MurekaClient
from bandgen.store.base import RecordStore
from bandgen.store.memory import InMemoryRecordStore


@dataclass
class Pipeline:
    config: PipelineConfig
    store: RecordStore
    executor: StageExecutor
    poller: StatusPoller
    orchestrator: PipelineOrchestrator


def build_pipeline(
    config: PipelineConfig | None = None,
    store: RecordStore | None = None,
    llm: LanguageModelClient | None = None,
    images: FalImageClient | None = None,
    tasks: MurekaClient | None = None,
    clock: Callable[[], datetime] = utcnow,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Pipeline:
    """Build every component against the same store and config.

    Any collaborator can be passed in to replace the default built from
    ``config``; tests use this to inject fakes.
    """
    config = config or PipelineConfig.from_env()
    store = store if store is not None else InMemoryRecordStore()
    llm = llm or LanguageModelClient(config.llm)
    images = images or FalImageClient(config.images)
    tasks = tasks or MurekaClient(config.audio)

    executor = StageExecutor(store, llm, images, tasks, config, clock=clock)
    poller = StatusPoller(store, tasks, config, clock=clock, sleep=sleep)
    orchestrator = PipelineOrchestrator(store, executor, poller, config, sleep=sleep)
    return Pipeline(
        config=config,
        store=store,
        executor=executor,
        poller=poller,
        orchestrator=orchestrator,
    )
