from core.priorities import Priority
from core.settings import ReminderDefaults
from models.task import Task
from services.reminders import ReminderPolicy, parse_offsets


def test_parse_offsets_accepts_lists_and_numbers():
    assert parse_offsets("10, 30;60 90") == (10, 30, 60, 90)
    assert parse_offsets(15) == (15,)
    assert parse_offsets("soon, 5, -3") == (5,)
    assert parse_offsets(None) == ()


def test_defaults_apply_when_tables_are_empty(book):
    policy = ReminderPolicy.from_workbook(book, ReminderDefaults())

    assert policy.offsets_for(Task(priority=Priority.URGENT)) == [10, 60, 1440]
    assert policy.offsets_for(Task(priority=Priority.MEDIUM, category="Work")) == [30]


def test_tables_override_defaults_and_union_is_deduplicated(book):
    book.priority_reminders.append_record({"Priority": "medium", "ReminderOffsets": "15, 5"})
    book.priority_reminders.append_record({"Priority": "Whenever", "ReminderOffsets": "1"})
    book.category_reminders.append_record({"Category": "Work", "ReminderOffsets": "15,45"})

    policy = ReminderPolicy.from_workbook(book, ReminderDefaults())

    assert policy.offsets_for(Task(priority=Priority.MEDIUM, category="work")) == [5, 15, 45]
    assert policy.offsets_for(Task(priority=Priority.HIGH)) == []
