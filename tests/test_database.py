# tests/test_database.py
import csv
import pytest
from portsurgeon.core.database import DatabaseManager


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(db_name=str(tmp_path / "history.db"))
    yield manager
    manager.close()


def test_actions_are_returned_newest_first(db):
    db.log_action("kill", "node", 4242, 3000, True, "Process 4242 (node) terminated successfully")
    db.log_action("force_kill", "postgres", 5432, None, False, "Elevated privileges required")

    entries = db.get_recent_actions()
    assert [e.action for e in entries] == ["force_kill", "kill"]
    assert entries[0].port is None
    assert entries[0].success is False
    assert entries[1].target == "node"
    assert entries[1].port == 3000


def test_limit_and_clear(db):
    for pid in range(5):
        db.log_action("kill", "worker", pid + 100, None, True, "ok")

    assert len(db.get_recent_actions(limit=2)) == 2
    db.clear_actions()
    assert db.get_recent_actions() == []


def test_csv_export(db, tmp_path):
    db.log_action("container_stop", "web", 500, 8080, True, "Container abc action stop completed")
    target = tmp_path / "actions.csv"

    ok, message = db.export_actions_to_csv(str(target))
    assert ok, message

    with open(target, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0][:3] == ["TIMESTAMP", "ACTION", "TARGET"]
    assert rows[1][1:3] == ["container_stop", "web"]


def test_csv_export_reports_io_errors(db, tmp_path):
    ok, message = db.export_actions_to_csv(str(tmp_path / "missing" / "actions.csv"))
    assert not ok
    assert message
