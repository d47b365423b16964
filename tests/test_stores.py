from __future__ import annotations

import asyncio
import json
import time

import pytest

from chartsignal.core.jsonstore import JsonTable
from chartsignal.errors import NotFound, PersistenceError
from chartsignal.store.history import HistoryJournal
from chartsignal.store.users import CredentialStore
from chartsignal.vision.schema import ImageRef, RiskSettings, SignalPlan

PLAN = SignalPlan(signal="WAIT", confidence=40, entry="10", stopLoss="9", targets=["11", "12", "13"])


def _image(n: int = 0) -> ImageRef:
    return ImageRef(filename=f"{n}.png", path=f"/tmp/{n}.png", url=f"/uploads/{n}.png", content_type="image/png", size=1)


@pytest.mark.asyncio()
async def test_missing_and_empty_table_read_as_empty(tmp_path):
    table = JsonTable(tmp_path / "t.json")
    assert await table.read() == []
    (tmp_path / "t.json").write_text("")
    assert await table.read() == []


@pytest.mark.asyncio()
async def test_corrupt_table_raises_instead_of_resetting(tmp_path):
    path = tmp_path / "t.json"
    path.write_text("[{broken")
    table = JsonTable(path)

    with pytest.raises(PersistenceError):
        await table.read()
    with pytest.raises(PersistenceError):
        await table.update(lambda rows: rows.append({"id": "1"}))
    assert path.read_text() == "[{broken"


@pytest.mark.asyncio()
async def test_failed_update_writes_nothing(tmp_path):
    table = JsonTable(tmp_path / "t.json")
    await table.update(lambda rows: rows.append({"id": "1"}))

    def boom(rows):
        rows.append({"id": "2"})
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await table.update(boom)
    assert await table.read() == [{"id": "1"}]
    assert [p.name for p in tmp_path.iterdir()] == ["t.json"]


@pytest.mark.asyncio()
async def test_upsert_is_idempotent_by_email(tmp_path):
    users = CredentialStore(tmp_path / "users.json")
    first = await users.upsert_user_by_email("a@x.io", "A", "pic")
    again = await users.upsert_user_by_email("a@x.io", "A", "pic")

    assert first.id == again.id
    assert first.apiKey == ""
    assert first.riskSettings is None
    assert len(json.loads((tmp_path / "users.json").read_text())) == 1


@pytest.mark.asyncio()
async def test_concurrent_first_logins_create_one_user(tmp_path):
    users = CredentialStore(tmp_path / "users.json")
    results = await asyncio.gather(*(users.upsert_user_by_email("same@x.io") for _ in range(10)))

    assert len({u.id for u in results}) == 1
    assert len(await users.table.read()) == 1


@pytest.mark.asyncio()
async def test_partial_settings_updates_keep_other_fields(tmp_path):
    users = CredentialStore(tmp_path / "users.json")
    user = await users.upsert_user_by_email("a@x.io")

    key, risk = await users.get_settings(user.id)
    assert key == ""
    assert risk == RiskSettings(balance=10000, riskPercent=1)

    await users.update_settings(user.id, api_key="k-1")
    await users.update_settings(user.id, risk_settings=RiskSettings(balance=5000, riskPercent=2))
    await users.update_settings(user.id, api_key="k-2")

    key, risk = await users.get_settings(user.id)
    assert key == "k-2"
    assert risk.balance == 5000
    assert risk.riskPercent == 2


@pytest.mark.asyncio()
async def test_unknown_user_is_not_found(tmp_path):
    users = CredentialStore(tmp_path / "users.json")
    with pytest.raises(NotFound):
        await users.get_settings("nope")
    with pytest.raises(NotFound):
        await users.update_settings("nope", api_key="k")
    assert not (tmp_path / "users.json").exists()


@pytest.mark.asyncio()
async def test_concurrent_appends_lose_nothing(tmp_path):
    journal = HistoryJournal(tmp_path / "history.json")
    n = 40
    records = await asyncio.gather(*(journal.append("u1", "swing", _image(i), PLAN) for i in range(n)))

    listed = await journal.list("u1")
    assert len(listed) == n
    assert len({r.id for r in listed}) == n
    assert {r.id for r in records} == {r.id for r in listed}


@pytest.mark.asyncio()
async def test_list_is_newest_first_and_per_user(tmp_path):
    journal = HistoryJournal(tmp_path / "history.json")
    a = await journal.append("u1", "scalp", _image(1), PLAN)
    await journal.append("u2", "scalp", _image(2), PLAN)
    b = await journal.append("u1", "swing", _image(3), PLAN)

    listed = await journal.list("u1")
    assert [r.id for r in listed] == [b.id, a.id]
    assert int(b.id) > int(a.id)
    assert await journal.list("nobody") == []


@pytest.mark.asyncio()
async def test_list_orders_by_timestamp_not_file_order(tmp_path):
    path = tmp_path / "history.json"
    rows = [
        {"id": "3", "userId": "u1", "imageUrl": "/uploads/c.png", "timestamp": "2025-01-01T10:00:00+00:00", "result": PLAN.model_dump()},
        {"id": "1", "userId": "u1", "imageUrl": "/uploads/a.png", "timestamp": "2025-03-01T10:00:00+00:00", "result": PLAN.model_dump()},
        {"id": "2", "userId": "u1", "imageUrl": "/uploads/b.png", "timestamp": "2025-02-01T10:00:00Z", "result": PLAN.model_dump()},
    ]
    path.write_text(json.dumps(rows))

    listed = await HistoryJournal(path).list("u1")
    assert [r.id for r in listed] == ["1", "2", "3"]


@pytest.mark.asyncio()
async def test_cancelled_append_does_not_clobber_later_append(tmp_path, monkeypatch):
    journal = HistoryJournal(tmp_path / "history.json")
    table = journal.table
    real_dump = table._dump
    slowed = []

    def slow_first_dump(rows):
        if not slowed:
            slowed.append(True)
            time.sleep(0.3)
        real_dump(rows)

    monkeypatch.setattr(table, "_dump", slow_first_dump)

    first = asyncio.create_task(journal.append("u1", "swing", _image(1), PLAN))
    await asyncio.sleep(0.05)
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    second = await journal.append("u1", "swing", _image(2), PLAN)

    ids = [r.id for r in await journal.list("u1")]
    assert second.id in ids
    assert len(ids) == 2
