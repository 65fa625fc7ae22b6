"""Tests for the job item repository."""

from datetime import datetime, timedelta, timezone

import pytest

from field_tasks.config import Config
from field_tasks.database.errors import NotFoundError, ValidationError
from field_tasks.database.job_items import apply_done_rule
from field_tasks.database.models import Quantity, StoreInfo
from field_tasks.utils.constants import ENTITY_JOB, ENTITY_JOB_ITEM
from field_tasks.utils.time import parse_iso, utc_now


def _actions(repo, item_id):
    return [e.action for e in repo.events.list(ENTITY_JOB_ITEM, item_id)]


class TestDoneRule:
    def test_done_gets_stamp(self):
        data = apply_done_rule({"state": "DONE", "done_at": None}, "T1")
        assert data["done_at"] == "T1"

    def test_done_keeps_existing_stamp(self):
        data = apply_done_rule({"state": "DONE", "done_at": "T0"}, "T1")
        assert data["done_at"] == "T0"

    def test_pending_clears_stamp(self):
        data = apply_done_rule({"state": "PENDING", "done_at": "T0"}, "T1")
        assert data["done_at"] is None


class TestJobItemCreate:
    def test_create_defaults(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "  Check breaker ")
        assert item.title == "Check breaker"
        assert item.state == "PENDING"
        assert item.urgency == "NORMAL"
        assert item.done_at is None
        assert repo.job_items.get(item.id) == item

    def test_create_with_nested_values(self, repo, job):
        item = repo.job_items.create(
            job.id, "BUY", "Cable 2.5mm",
            quantity={"amount": 50, "unit": "m"},
            store={"name": "Depot", "reference": "SKU-1"},
        )
        stored = repo.job_items.get(item.id)
        assert stored.quantity == Quantity(50, "m")
        assert stored.store == StoreInfo("Depot", "SKU-1")

    def test_create_reminder_normalized(self, repo, job):
        item = repo.job_items.create(
            job.id, "NOTE", "Call client", reminder_at="2026-05-01T08:00:00Z"
        )
        assert item.reminder_at == "2026-05-01T08:00:00.000000+00:00"

    def test_create_logs_event(self, repo, job):
        item = repo.job_items.create(job.id, "MATERIAL", "Breaker 16A")
        event = repo.events.list(ENTITY_JOB_ITEM, item.id)[0]
        assert event.action == "ITEM_CREATED"
        assert event.meta == {"job_id": job.id, "type": "MATERIAL"}

    @pytest.mark.parametrize("kwargs", [
        {"item_type": "TOOL", "title": "x"},
        {"item_type": "NOTE", "title": ""},
        {"item_type": "NOTE", "title": "x", "urgency": "LOW"},
        {"item_type": "BUY", "title": "x", "quantity": {"amount": -1}},
        {"item_type": "BUY", "title": "x", "quantity": {"amount": "two"}},
        {"item_type": "NOTE", "title": "x", "reminder_at": "tomorrow"},
    ])
    def test_create_invalid(self, repo, job, kwargs):
        with pytest.raises(ValidationError):
            repo.job_items.create(job.id, **kwargs)
        assert repo.job_items.list_by_job(job.id) == []


class TestJobItemList:
    def test_in_creation_order(self, repo, job):
        ids = [repo.job_items.create(job.id, "NOTE", t).id
               for t in ("a", "b", "c")]
        assert [i.id for i in repo.job_items.list_by_job(job.id)] == ids

    def test_only_that_job(self, repo, job):
        other = repo.jobs.create("Other")
        repo.job_items.create(other.id, "NOTE", "elsewhere")
        mine = repo.job_items.create(job.id, "NOTE", "here")
        assert [i.id for i in repo.job_items.list_by_job(job.id)] == [mine.id]

    def test_exclude_done(self, repo, job):
        a = repo.job_items.create(job.id, "NOTE", "a")
        b = repo.job_items.create(job.id, "NOTE", "b")
        repo.job_items.set_done(a.id, True)
        items = repo.job_items.list_by_job(job.id, include_done=False)
        assert [i.id for i in items] == [b.id]
        assert len(repo.job_items.list_by_job(job.id)) == 2


class TestJobItemUpdate:
    def test_update_fields(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        updated = repo.job_items.update(item.id, title="b", urgency="URGENT")
        assert updated.title == "b"
        assert updated.is_urgent
        assert updated.updated_at > item.updated_at
        assert updated.created_at == item.created_at
        assert _actions(repo, item.id)[0] == "ITEM_UPDATED"

    def test_timestamps_across_updates(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        stamps = [item.updated_at]
        for step in (
            lambda: repo.job_items.update(item.id, details="x"),
            lambda: repo.job_items.update(item.id, details="x"),
            lambda: repo.job_items.set_done(item.id, True),
            lambda: repo.job_items.snooze(item.id, None),
            lambda: repo.job_items.convert_to_buy(item.id),
        ):
            result = step()
            assert result.created_at == item.created_at
            stamps.append(result.updated_at)
        assert stamps == sorted(set(stamps))
        assert len(stamps) == 6

    def test_reorder_advances_updated_at(self, repo, job):
        a, b = (repo.job_items.create(job.id, "NOTE", t) for t in "ab")
        result = repo.job_items.reorder(job.id, [b.id, a.id])
        assert result[0].updated_at > b.updated_at
        assert result[0].created_at == b.created_at

    def test_job_id_is_read_only(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        with pytest.raises(ValidationError):
            repo.job_items.update(item.id, job_id="other")

    def test_update_state_applies_done_rule(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        done = repo.job_items.update(item.id, state="DONE")
        assert done.done_at == done.updated_at
        pending = repo.job_items.update(item.id, state="PENDING")
        assert pending.done_at is None

    def test_update_missing(self, repo):
        with pytest.raises(NotFoundError):
            repo.job_items.update("nope", title="x")


class TestSetDone:
    def test_done_and_undone(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        done = repo.job_items.set_done(item.id, True)
        assert done.is_done
        assert done.done_at is not None
        assert _actions(repo, item.id)[0] == "ITEM_DONE"

        undone = repo.job_items.set_done(item.id, False)
        assert not undone.is_done
        assert undone.done_at is None
        assert _actions(repo, item.id)[0] == "ITEM_UNDONE"

    def test_done_twice_keeps_first_stamp(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        first = repo.job_items.set_done(item.id, True)
        second = repo.job_items.set_done(item.id, True)
        assert second.done_at == first.done_at
        assert second.updated_at > first.updated_at

    def test_missing(self, repo):
        with pytest.raises(NotFoundError):
            repo.job_items.set_done("nope", True)


class TestSnooze:
    def test_snooze_to_time(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        at = datetime(2026, 6, 1, 9, 30, tzinfo=timezone.utc)
        snoozed = repo.job_items.snooze(item.id, at)
        assert snoozed.reminder_at == "2026-06-01T09:30:00.000000+00:00"
        event = repo.events.list(ENTITY_JOB_ITEM, item.id)[0]
        assert event.action == "ITEM_SNOOZED"
        assert event.meta == {"reminder_at": snoozed.reminder_at}

    def test_clear_reminder(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a",
                                     reminder_at="2026-06-01T09:30:00Z")
        assert repo.job_items.snooze(item.id, None).reminder_at is None

    def test_snooze_for_default_minutes(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        before = utc_now()
        snoozed = repo.job_items.snooze_for(item.id)
        delta = parse_iso(snoozed.reminder_at) - before
        expected = timedelta(minutes=Config.DEFAULT_SNOOZE_MINUTES)
        assert expected <= delta < expected + timedelta(minutes=1)

    def test_snooze_until_tomorrow(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        snoozed = repo.job_items.snooze_until_tomorrow(item.id, hour=7)
        local = parse_iso(snoozed.reminder_at).astimezone()
        assert local.hour == 7
        assert local.minute == 0
        assert local.date() > datetime.now().astimezone().date()


class TestConvertToBuy:
    def test_convert(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "Need more cable")
        converted = repo.job_items.convert_to_buy(item.id)
        assert converted.type == "BUY"
        event = repo.events.list(ENTITY_JOB_ITEM, item.id)[0]
        assert event.action == "ITEM_CONVERTED"
        assert event.meta == {"from": "NOTE", "to": "BUY"}

    def test_convert_missing(self, repo):
        with pytest.raises(NotFoundError):
            repo.job_items.convert_to_buy("nope")


class TestReorder:
    def test_reorder(self, repo, job):
        a, b, c = (repo.job_items.create(job.id, "NOTE", t) for t in "abc")
        result = repo.job_items.reorder(job.id, [c.id, a.id, b.id])
        assert [i.id for i in result] == [c.id, a.id, b.id]
        assert [i.sort_order for i in result] == [0, 1, 2]
        listed = repo.job_items.list_by_job(job.id)
        assert [i.id for i in listed] == [c.id, a.id, b.id]

    def test_reorder_logged_on_job(self, repo, job):
        a, b = (repo.job_items.create(job.id, "NOTE", t) for t in "ab")
        repo.job_items.reorder(job.id, [b.id, a.id])
        event = repo.events.list(ENTITY_JOB, job.id)[0]
        assert event.action == "ITEM_REORDERED"
        assert event.meta == {"ordered_item_ids": [b.id, a.id]}

    def test_reorder_unknown_id_changes_nothing(self, repo, job):
        a, b = (repo.job_items.create(job.id, "NOTE", t) for t in "ab")
        with pytest.raises(NotFoundError):
            repo.job_items.reorder(job.id, [b.id, "nope", a.id])
        assert [i.id for i in repo.job_items.list_by_job(job.id)] == [a.id, b.id]

    def test_reorder_foreign_item(self, repo, job):
        other = repo.jobs.create("Other")
        a = repo.job_items.create(job.id, "NOTE", "a")
        x = repo.job_items.create(other.id, "NOTE", "x")
        with pytest.raises(ValidationError):
            repo.job_items.reorder(job.id, [a.id, x.id])
        assert repo.job_items.get(a.id).sort_order == a.sort_order

    def test_reorder_duplicates(self, repo, job):
        a = repo.job_items.create(job.id, "NOTE", "a")
        with pytest.raises(ValidationError):
            repo.job_items.reorder(job.id, [a.id, a.id])


class TestJobItemDelete:
    def test_delete(self, repo, job):
        item = repo.job_items.create(job.id, "NOTE", "a")
        assert repo.job_items.delete(item.id) is True
        assert repo.job_items.get(item.id) is None
        event = repo.events.list(ENTITY_JOB_ITEM, item.id)[0]
        assert event.action == "ITEM_DELETED"
        assert event.meta == {"job_id": job.id}

    def test_delete_missing(self, repo):
        assert repo.job_items.delete("nope") is False
