import json
from datetime import datetime, timedelta, timezone

import pytest

from bandgen.bootstrap import build_pipeline
from bandgen.config import PipelineConfig, RetryConfig
from bandgen.errors import ExternalServiceError
from bandgen.services.retry import RetryPolicy
from bandgen.services.task_client import TaskState, TaskStatus
from bandgen.store.memory import InMemoryRecordStore

PROFILE_REPLY = {
    "bandName": "Glass Harbor",
    "primaryGenre": "Dream Pop",
    "influences": ["Beach House", "Cocteau Twins", "Slowdive"],
    "coreSound": "Hazy guitars over slow drum machines.",
    "vocalStyle": {"type": "Breathy female vocals", "description": "Soft and distant"},
    "origin": "Lisbon, Portugal",
    "formationYear": 2021,
    "backstory": "Two cousins recording in a seaside garage.",
    "visualIdentity": {
        "colors": "Sea green and pearl",
        "aesthetic": "Foggy coastline",
        "logo": "A lighthouse drawn in one line",
        "style": "Soft focus film photography",
    },
    "lyricalThemes": ["Distance", "Tides", "Memory"],
    "albumConcept": {
        "title": "Low Tide Letters",
        "description": "Songs written as letters never sent",
        "themes": ["Longing"],
        "narrative": "A year of unsent letters",
    },
    "trackListing": [
        {"title": "Salt Lines", "theme": "Departure", "description": "Leaving the harbor"},
        {"title": "Fog Signal", "theme": "Waiting", "description": "Calling into the fog"},
        {"title": "Undertow", "theme": "Return", "description": "Pulled back home"},
    ],
    "aiDescription": "short",
    "bandAiInstructions": "Keep imagery coastal.",
    "albumAiInstructions": "Each song is a letter.",
}

LYRICS_REPLY = {
    "songDescription": "Slow, hazy, melancholic",
    "lyrics": "[Verse 1]\nSalt on the window\n\n[Chorus]\nHold the line",
}


class FakeLanguageModel:
    """Replies from a queue, then by prompt kind (profile vs lyrics)."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    def is_configured(self):
        return True

    async def complete(self, system_prompt, user_prompt, max_tokens=None, temperature=0.7):
        self.calls.append({"system": system_prompt, "user": user_prompt, "temperature": temperature})
        if self.replies:
            reply = self.replies.pop(0)
        elif "band profiles" in system_prompt:
            reply = json.dumps(PROFILE_REPLY)
        else:
            reply = json.dumps(LYRICS_REPLY)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeImageClient:
    def __init__(self, configured=True, fail_aspects=()):
        self.configured = configured
        self.fail_aspects = set(fail_aspects)
        self.calls = []

    def is_configured(self):
        return self.configured

    async def generate(self, prompt, aspect="square"):
        if not self.configured:
            return None
        self.calls.append((prompt, aspect))
        if aspect in self.fail_aspects:
            raise ExternalServiceError(f"{aspect} rejected")
        return f"https://img.test/{aspect}/{len(self.calls)}.png"


class FakeTaskClient:
    """Submit hands out task-N ids; query replays scripted statuses per task."""

    def __init__(self):
        self.submissions = []
        self.queries = []
        self.scripts = {}
        self.submit_errors = {}

    def is_configured(self):
        return True

    def script(self, task_id, *replies):
        self.scripts.setdefault(task_id, []).extend(replies)

    async def submit(self, lyrics, style_prompt):
        self.submissions.append({"lyrics": lyrics, "prompt": style_prompt})
        if lyrics in self.submit_errors:
            raise self.submit_errors[lyrics]
        return f"task-{len(self.submissions)}"

    async def query(self, task_id):
        self.queries.append(task_id)
        replies = self.scripts.get(task_id) or []
        reply = replies.pop(0) if replies else processing(task_id)
        if isinstance(reply, Exception):
            raise reply
        return reply


def processing(task_id, provider_status="running"):
    return TaskStatus(task_id=task_id, state=TaskState.PROCESSING, provider_status=provider_status)


def completed(task_id, url="https://cdn.test/song.mp3", duration=184.0):
    return TaskStatus(
        task_id=task_id,
        state=TaskState.COMPLETED,
        provider_status="succeeded",
        result_url=url,
        duration=duration,
    )


def failed(task_id, message=None):
    return TaskStatus(
        task_id=task_id, state=TaskState.FAILED, provider_status="failed", error_message=message
    )


class FrozenClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def config():
    no_wait = dict(base_delay_seconds=0.0, max_delay_seconds=0.0)
    return PipelineConfig(
        retries=RetryConfig(
            llm=RetryPolicy(max_attempts=3, **no_wait),
            images=RetryPolicy(max_attempts=2, **no_wait),
            tasks=RetryPolicy(max_attempts=2, **no_wait),
        )
    )


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def llm():
    return FakeLanguageModel()


@pytest.fixture
def images():
    return FakeImageClient()


@pytest.fixture
def tasks():
    return FakeTaskClient()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def pipeline(config, store, llm, images, tasks, clock, sleep):
    return build_pipeline(
        config,
        store=store,
        llm=llm,
        images=images,
        tasks=tasks,
        clock=clock,
        sleep=sleep,
    )
