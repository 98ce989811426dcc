import json

import pytest

import main


@pytest.fixture()
def cli(monkeypatch, tmp_path):
    monkeypatch.setattr(main, "ensure_data_dirs", lambda: None)
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"db_path": str(tmp_path / "tasks.db")}), encoding="utf-8")

    def run(*argv):
        return main.main(["--offline", "--config", str(config_path), *argv])

    return run


def test_dispatch_round_trip_on_sqlite(cli, capsys):
    request = json.dumps({"action": "createTask", "payload": {"Subject": "From CLI", "Start Date": "2024-04-01"}})

    assert cli("dispatch", request) == 0
    created = json.loads(capsys.readouterr().out)
    assert created["data"]["rowVersion"] == 1
    assert created["data"]["sync"] is None

    assert cli("dispatch", json.dumps({"action": "getTasks"})) == 0
    tasks = json.loads(capsys.readouterr().out)["data"]
    assert [t["Subject"] for t in tasks] == ["From CLI"]


def test_dispatch_error_exit_code(cli, capsys):
    assert cli("dispatch", json.dumps({"action": "nope"})) == 1
    assert json.loads(capsys.readouterr().out)["kind"] == "InvalidAction"


def test_occurrences_and_init(cli, capsys):
    cli("dispatch", json.dumps({"action": "createTask", "payload": {"Subject": "Gym", "Start Date": "2024-04-01", "Recurrence": "Daily"}}))
    capsys.readouterr()

    assert cli("occurrences", "--from", "2024-04-01", "--to", "2024-04-03") == 0
    items = json.loads(capsys.readouterr().out)["data"]
    assert [i["localDate"] for i in items] == ["2024-04-01", "2024-04-02", "2024-04-03"]

    assert cli("init") == 0
    assert "8 tables" in capsys.readouterr().out


def test_build_dispatcher_without_calendar(config, book):
    dispatcher = main.build_dispatcher(config, book)

    assert dispatcher.reconciler is None
    assert "splitSeries" in dispatcher.actions
