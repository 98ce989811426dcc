from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
import random
import sys

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.errors import StaleExternalReference
from core.settings import DEFAULT_CONFIG
from helpers.ids import IdGenerator
from services.overlays import OverlayRepository
from services.task_repository import TaskRepository
from storage.workbook import memory_workbook


FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeCalendar:
    """In-memory stand-in for :class:`GoogleCalendar` that records every call."""

    def __init__(self):
        self.events = {}
        self.calls = []
        self.fail = None
        self.vanish_on_update = False
        self._seq = 0

    def _check(self):
        if self.fail is not None:
            raise self.fail

    def _insert(self, kind, title, start, end, description, reminders, task_id, recurrence):
        self._check()
        self._seq += 1
        event_id = f"evt-{self._seq}"
        event = {
            "id": event_id,
            "etag": f'"etag-{self._seq}"',
            "summary": title,
            "start": start,
            "end": end,
            "description": description,
            "reminders": list(reminders),
            "task_id": task_id,
            "recurrence": list(recurrence),
        }
        self.events[event_id] = event
        self.calls.append((kind, event_id, title, start, end))
        return dict(event)

    def find_event_by_id(self, event_id):
        self._check()
        self.calls.append(("find", event_id))
        event = self.events.get(event_id)
        return dict(event) if event else None

    def create_event(self, title, start, end, *, description="", reminders=(), task_id=None, recurrence=()):
        return self._insert("create", title, start, end, description, reminders, task_id, recurrence)

    def create_all_day_event(
        self, title, start, end=None, *, description="", reminders=(), task_id=None, recurrence=()
    ):
        return self._insert("create_all_day", title, start, end, description, reminders, task_id, recurrence)

    def update_event(
        self,
        event,
        title,
        start,
        end,
        description="",
        *,
        all_day=False,
        reminders=(),
        task_id=None,
        recurrence=(),
    ):
        self._check()
        if self.vanish_on_update:
            self.events.pop(event["id"], None)
            raise StaleExternalReference(f"Event {event['id']} disappeared")
        stored = self.events[event["id"]]
        stored.update(
            summary=title,
            start=start,
            end=end,
            description=description,
            reminders=list(reminders),
            recurrence=list(recurrence),
            etag=f'"etag-{event["id"]}-u"',
        )
        self.calls.append(("update", event["id"], title, start, end))
        return dict(stored)

    def delete_event(self, event):
        self._check()
        self.events.pop(event["id"], None)
        self.calls.append(("delete", event["id"]))

    def kinds(self):
        return [c[0] for c in self.calls if c[0] != "find"]


@pytest.fixture()
def config():
    return replace(DEFAULT_CONFIG, backend="memory", sync_log_path=None)


@pytest.fixture()
def strict_config(config):
    return replace(config, tasks=replace(config.tasks, strict_versions=True))


@pytest.fixture()
def book():
    return memory_workbook()


@pytest.fixture()
def ids():
    ticks = iter(range(1_709_290_000_000, 1_709_290_000_000 + 10_000))
    return IdGenerator(clock=lambda: next(ticks), rng=random.Random(7))


@pytest.fixture()
def repo(book, config, ids):
    return TaskRepository(book.tasks, config, ids=ids, clock=lambda: FIXED_NOW)


@pytest.fixture()
def overlays(book):
    return OverlayRepository(book, clock=lambda: FIXED_NOW)


@pytest.fixture()
def calendar():
    return FakeCalendar()
