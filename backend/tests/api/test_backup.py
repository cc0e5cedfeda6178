"""Integration Tests: database backups and the backup scheduler."""

import os

import pytest

from textile_erp.core.config import settings
from textile_erp.services import scheduler


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    """File-based database location for backup tests."""
    path = tmp_path / "textile_manager.db"
    path.write_bytes(b"SQLite format 3\x00")
    monkeypatch.setattr(settings, "SQLITE_DATABASE_URI", f"sqlite+aiosqlite:///{path}")
    return path


async def test_manual_backup(client, db_file):
    resp = await client.post("/api/backup/create")

    assert resp.status_code == 201
    backup = resp.json()["backup"]
    assert backup["filename"].startswith("backup_")
    assert backup["automatic"] is False

    listing = (await client.get("/api/backup/list")).json()
    assert [b["filename"] for b in listing["backups"]] == [backup["filename"]]
    assert listing["backup_dir"] == str(db_file.parent / "backups")


async def test_backup_requires_file_database(client, monkeypatch):
    monkeypatch.setattr(settings, "SQLITE_DATABASE_URI", "sqlite+aiosqlite:///:memory:")

    resp = await client.post("/api/backup/create")

    assert resp.status_code == 400


async def test_backup_of_missing_file(client, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "SQLITE_DATABASE_URI", f"sqlite:///{tmp_path / 'missing.db'}")

    resp = await client.post("/api/backup/create")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Database file does not exist"


async def test_scheduler_status_when_disabled(client):
    resp = await client.get("/api/backup/scheduler")

    assert resp.status_code == 200
    assert resp.json()["scheduler"]["running"] is False
    assert resp.json()["auto_backup"]["keep_count"] == settings.AUTO_BACKUP_KEEP_COUNT


def test_cleanup_keeps_newest_auto_backups(tmp_path):
    for i in range(5):
        path = tmp_path / f"auto_backup_2024010{i}_030000_000000.db"
        path.write_bytes(b"")
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
    (tmp_path / "backup_manual.db").write_bytes(b"")

    removed = scheduler.cleanup_old_backups(str(tmp_path), keep_count=2)

    assert sorted(removed) == [f"auto_backup_2024010{i}_030000_000000.db" for i in range(3)]
    assert sorted(os.listdir(tmp_path)) == [
        "auto_backup_20240103_030000_000000.db",
        "auto_backup_20240104_030000_000000.db",
        "backup_manual.db",
    ]


def test_auto_backup_creates_and_rotates(db_file, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_BACKUP_KEEP_COUNT", 1)

    scheduler.auto_backup()
    scheduler.auto_backup()

    backups = scheduler.list_backups()
    assert len(backups) == 1
    assert backups[0]["automatic"] is True


def test_auto_backup_logs_failure(tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(settings, "SQLITE_DATABASE_URI", f"sqlite:///{tmp_path / 'missing.db'}")

    scheduler.auto_backup()

    assert "自动备份失败" in caplog.text
