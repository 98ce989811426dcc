from dataclasses import replace
from datetime import date, timedelta

import pytest

from core.settings import RecurrenceSettings
from models.task import SUBJECT, Task
from services.recurrence import (
    DateWindow,
    RecurrenceExpander,
    build_rule,
    calendar_recurrence,
    rule_text,
)


START = date(2024, 4, 1)  # a Monday
APRIL = DateWindow(date(2024, 4, 1), date(2024, 4, 30))


def weekly(task_id="series-1", **changes):
    base = Task(subject="Standup", start_date=START, recurrence="Weekly", task_id=task_id, row_index=2)
    return replace(base, **changes)


def dates(occurrences):
    return [o.local_date for o in occurrences]


def test_weekly_rule_anchored_at_start_date():
    occurrences = list(RecurrenceExpander().expand(weekly(), APRIL))

    assert dates(occurrences) == [START + timedelta(days=7 * i) for i in range(5)]
    assert all(o.series_id == o.recurrence_id == "series-1" for o in occurrences)
    assert occurrences[1].task.start_date == date(2024, 4, 8)


def test_delete_and_edit_overlays(overlays):
    task = weekly()
    overlays.delete_occurrence(task.task_id, date(2024, 4, 8))
    overlays.edit_occurrence(task.task_id, date(2024, 4, 15), {SUBJECT: "Retro instead"})

    expander = RecurrenceExpander(overlays.load_index(), [task])
    occurrences = list(expander.expand(task, APRIL))

    assert date(2024, 4, 8) not in dates(occurrences)
    edited = [o for o in occurrences if o.local_date == date(2024, 4, 15)][0]
    assert edited.task.subject == "Retro instead"
    assert edited.is_edited
    assert all(o.task.subject == "Standup" for o in occurrences if o is not edited)


def test_delete_beats_edit_and_done(overlays):
    task = weekly()
    day = date(2024, 4, 22)
    overlays.edit_occurrence(task.task_id, day, {SUBJECT: "Changed"})
    overlays.set_done(task.task_id, day, True)
    overlays.delete_occurrence(task.task_id, day)

    occurrences = list(RecurrenceExpander(overlays.load_index(), [task]).expand(task, APRIL))

    assert day not in dates(occurrences)


def test_done_overlay_marks_single_occurrence(overlays):
    task = weekly()
    overlays.set_done(task.task_id, date(2024, 4, 22), True)
    overlays.set_done(task.task_id, date(2024, 4, 15), True)
    overlays.set_done(task.task_id, date(2024, 4, 15), False)

    occurrences = list(RecurrenceExpander(overlays.load_index(), [task]).expand(task, APRIL))

    completed = [o.local_date for o in occurrences if o.is_completed]
    assert completed == [date(2024, 4, 22)]
    assert len(overlays.book.occurrence_done.records()) == 2


def test_repeat_count_bounds_the_series():
    task = weekly(recurrence="daily", repeat_count=3)

    assert dates(RecurrenceExpander().expand(task, APRIL)) == [
        date(2024, 4, 1),
        date(2024, 4, 2),
        date(2024, 4, 3),
    ]


def test_raw_rrule_with_prefix():
    task = weekly(recurrence="RRULE:FREQ=DAILY;INTERVAL=2")
    window = DateWindow(date(2024, 4, 1), date(2024, 4, 7))

    assert dates(RecurrenceExpander().expand(task, window)) == [
        date(2024, 4, 1),
        date(2024, 4, 3),
        date(2024, 4, 5),
        date(2024, 4, 7),
    ]


def test_rules_firing_more_than_daily_are_rejected():
    task = weekly(recurrence="FREQ=HOURLY;COUNT=3")

    with pytest.raises(ValueError):
        build_rule(task)
    with pytest.raises(ValueError):
        list(RecurrenceExpander().expand(task, APRIL))


def test_one_occurrence_per_date_when_rule_fires_twice_a_day():
    task = weekly(recurrence="FREQ=DAILY;BYHOUR=9,17", repeat_count=4)

    occurrences = list(RecurrenceExpander().expand(task, APRIL))

    assert dates(occurrences) == [date(2024, 4, 1), date(2024, 4, 2)]
    assert len({(o.recurrence_id, o.local_date) for o in occurrences}) == 2

def test_non_recurring_task_yields_its_start_date_only():
    task = weekly(recurrence="")

    assert dates(RecurrenceExpander().expand(task, APRIL)) == [START]
    assert list(RecurrenceExpander().expand(task, DateWindow(date(2024, 5, 1), date(2024, 5, 31)))) == []


def test_window_validation():
    with pytest.raises(ValueError):
        DateWindow(date(2024, 4, 10), date(2024, 4, 1))
    with pytest.raises(ValueError):
        DateWindow(None, date(2024, 4, 1))

    expander = RecurrenceExpander(settings=RecurrenceSettings(max_window_days=30))
    with pytest.raises(ValueError):
        list(expander.expand(weekly(), DateWindow(date(2024, 1, 1), date(2024, 3, 1))))


def test_split_hands_the_rest_of_the_series_to_the_new_task(overlays):
    original = weekly()
    successor = Task(
        subject="Standup v2",
        start_date=date(2024, 4, 15),
        recurrence="daily",
        repeat_count=3,
        task_id="series-2",
        row_index=3,
    )
    overlays.add_split(original.task_id, date(2024, 4, 15), successor.task_id)
    overlays.set_done(successor.task_id, date(2024, 4, 16), True)
    tasks = [original, successor]

    occurrences = list(RecurrenceExpander(overlays.load_index(), tasks).expand_all(tasks, APRIL))

    assert [(o.local_date.day, o.recurrence_id) for o in occurrences] == [
        (1, "series-1"),
        (8, "series-1"),
        (15, "series-2"),
        (16, "series-2"),
        (17, "series-2"),
    ]
    assert {o.series_id for o in occurrences} == {"series-1"}
    assert occurrences[2].task.subject == "Standup v2"
    assert [o.local_date.day for o in occurrences if o.is_completed] == [16]


def test_split_on_first_date_continues_after_original_is_deleted(overlays):
    original = weekly(marked_for_deletion=True)
    successor = weekly(task_id="series-2", subject="Renamed", row_index=3)
    overlays.add_split(original.task_id, START, successor.task_id)
    tasks = [original, successor]

    occurrences = list(RecurrenceExpander(overlays.load_index(), tasks).expand_all(tasks, APRIL))

    assert len(occurrences) == 5
    assert {o.task.subject for o in occurrences} == {"Renamed"}


def test_expand_all_merges_by_date_and_skips_broken_rules():
    a = weekly(task_id="a", start_date=date(2024, 4, 3))
    b = weekly(task_id="b")
    broken = weekly(task_id="c", recurrence="FREQ=SOMETIMES")
    gone = weekly(task_id="d", marked_for_deletion=True)
    tasks = [a, b, broken, gone]

    occurrences = list(RecurrenceExpander(tasks=tasks).expand_all(tasks, DateWindow(START, date(2024, 4, 10))))

    assert [(o.local_date.day, o.series_id) for o in occurrences] == [(1, "b"), (3, "a"), (8, "b"), (10, "a")]
    with pytest.raises(ValueError):
        build_rule(broken)


def test_rule_text_and_calendar_lines():
    assert rule_text(weekly(recurrence="WEEKLY")) == "FREQ=WEEKLY"
    assert rule_text(weekly(recurrence="none")) == ""
    assert calendar_recurrence(weekly(repeat_count=4)) == ["RRULE:FREQ=WEEKLY;COUNT=4"]
    assert calendar_recurrence(weekly(recurrence="")) == []
    # split at the third date keeps two occurrences on the original series
    assert calendar_recurrence(weekly(), until=date(2024, 4, 15)) == ["RRULE:FREQ=WEEKLY;COUNT=2"]
    assert calendar_recurrence(weekly(recurrence="FREQ=DAILY;COUNT=10"), until=date(2024, 4, 4)) == [
        "RRULE:FREQ=DAILY;COUNT=3"
    ]
