"""
Tests for the bulk import engine.

Jobs run against the fake Accurate host; the ledger is inspected directly
after each run.
"""

import json
from datetime import date

import pytest
import requests

from accurate_exchange.constants import JobItemStatus, JobStatus
from accurate_exchange.exceptions import NotFoundError, ValidationError
from accurate_exchange.services.import_service import ImportService
from tests.fixtures.factories import CredentialFactory

SAVE = "/api/item-adjustment/save.do"
TODAY = date.today().isoformat()

UNITS = {"BRG-001": "PCS", "BRG-002": "BOX", "BRG-003": "KG", "BRG-004": "PCS", "BRG-005": "PCS"}


def row(code, quantity=1, **overrides):
    data = {
        "item_code": code,
        "type": "ADJUSTMENT_IN",
        "quantity": quantity,
        "unit": UNITS.get(code, "PCS"),
        "date": TODAY,
    }
    data.update(overrides)
    return data


def five_rows():
    return [row(f"BRG-{n:03d}", quantity=n) for n in range(1, 6)]


@pytest.fixture
def credential(db_session):
    return CredentialFactory()


@pytest.fixture
def service(db_session, dispatcher, app_config):
    return ImportService(db_session, dispatcher, app_config.imports)


def statuses(service, job_id):
    return [item.status for item in service.jobs.list_items(job_id)]


class TestCreateJob:
    def test_rows_indexed_from_one(self, service, credential):
        job = service.create_job(credential, "inventory_adjustment", five_rows())

        assert job.status == JobStatus.PENDING.value
        assert job.total_rows == 5
        items = service.jobs.list_items(job.id)
        assert [item.row_index for item in items] == [1, 2, 3, 4, 5]
        assert items[1].source_record["item_code"] == "BRG-002"

    def test_prevalidation_failures_recorded(self, service, credential):
        rows = five_rows()
        rows[1]["unit"] = "PCS"
        rows[3]["quantity"] = 0

        job = service.create_job(credential, "inventory_adjustment", rows)

        assert job.failed_rows == 2
        items = service.jobs.list_items(job.id)
        assert items[1].status == JobItemStatus.ERROR.value
        assert items[1].error_message.startswith("Row 2: unit:")
        assert items[3].error_message.startswith("Row 4: quantity:")
        assert items[3].attempts == 0

    def test_lookup_outage_recorded_against_its_row(self, service, credential, fake_accurate):
        fake_accurate.fail_next("/api/item/list.do", 503, 503, 503)

        job = service.create_job(credential, "inventory_adjustment", five_rows())

        assert job.status == JobStatus.PENDING.value
        assert job.failed_rows == 1
        items = service.jobs.list_items(job.id)
        assert items[0].status == JobItemStatus.ERROR.value
        assert items[0].error_message.startswith("Row 1: item_code: lookup failed:")
        assert "503" in items[0].error_message
        assert [item.status for item in items[1:]] == [JobItemStatus.PENDING.value] * 4

    @pytest.mark.parametrize(
        "rows,message",
        [
            ([], "import batch is empty"),
            ({"item_code": "BRG-001"}, "rows must be a list of records"),
            ("BRG-001,5", "rows must be a list of records"),
            ([{"item_code": "BRG-001"}, "BRG-002", 7], "rows 2, 3 are not records"),
        ],
    )
    def test_malformed_batch_yields_failed_job(self, service, credential, fake_accurate, rows, message):
        job = service.create_job(credential, "inventory_adjustment", rows)

        assert job.status == JobStatus.FAILED.value
        assert job.error_message == message
        assert job.total_rows == 0
        assert job.completed_at is not None
        assert fake_accurate.requests == []

    def test_unknown_resource_type(self, service, credential):
        with pytest.raises(ValidationError):
            service.create_job(credential, "sales_order", five_rows())


class TestRunJob:
    def test_partial_run(self, service, credential, fake_accurate):
        fake_accurate.reject_items["BRG-003"] = "Kuantitas melebihi stok"
        job = service.create_job(credential, "inventory_adjustment", five_rows())

        job = service.run_job(job.id)

        assert job.status == JobStatus.PARTIAL.value
        assert (job.succeeded_rows, job.failed_rows) == (4, 1)
        assert job.completed_at is not None

        items = service.jobs.list_items(job.id)
        assert items[2].status == JobItemStatus.ERROR.value
        assert items[2].error_message == "Kuantitas melebihi stok"
        assert items[2].remote_id is None
        for item in items[:2] + items[3:]:
            assert item.status == JobItemStatus.SUCCESS.value
            assert item.remote_id
            assert item.remote_number.startswith("IA.2024.")
            assert item.attempts == 1

    def test_all_rows_succeed(self, service, credential, fake_accurate):
        job = service.create_job(credential, "inventory_adjustment", five_rows())

        job = service.run_job(job.id)

        assert job.status == JobStatus.COMPLETED.value
        assert job.succeeded_rows == 5
        assert sorted(s["detailItem"][0]["itemNo"] for s in fake_accurate.saved) == sorted(UNITS)

    def test_save_payload(self, service, credential, fake_accurate):
        job = service.create_job(
            credential,
            "inventory_adjustment",
            [row("BRG-002", quantity=3, type="Pengurangan", warehouse="Gudang B", description="rusak")],
        )
        service.run_job(job.id)

        (saved,) = fake_accurate.saved
        assert saved["transDate"] == date.today().strftime("%d/%m/%Y")
        assert saved["description"] == "rusak"
        line = saved["detailItem"][0]
        assert line["itemAdjustmentType"] == "ADJUSTMENT_OUT"
        assert line["quantity"] == 3
        assert line["warehouseName"] == "Gudang B"

    def test_prevalidated_errors_never_dispatched(self, service, credential, fake_accurate):
        rows = five_rows()
        rows[0]["item_code"] = "BRG-404"

        job = service.run_job(service.create_job(credential, "inventory_adjustment", rows).id)

        assert job.status == JobStatus.PARTIAL.value
        assert (job.succeeded_rows, job.failed_rows) == (4, 1)
        assert len(fake_accurate.calls_to(SAVE)) == 4
        assert "BRG-404" not in {s["detailItem"][0]["itemNo"] for s in fake_accurate.saved}

    def test_every_row_rejected(self, service, credential, fake_accurate):
        for code in UNITS:
            fake_accurate.reject_items[code] = "Gudang tidak aktif"

        job = service.run_job(service.create_job(credential, "inventory_adjustment", five_rows()).id)

        assert job.status == JobStatus.FAILED.value
        assert job.failed_rows == 5

    def test_counters_add_up(self, service, credential, fake_accurate):
        fake_accurate.reject_items["BRG-001"] = "ditolak"
        fake_accurate.reject_items["BRG-004"] = "ditolak"

        job = service.run_job(service.create_job(credential, "inventory_adjustment", five_rows()).id)

        assert job.succeeded_rows + job.failed_rows == job.total_rows
        assert statuses(service, job.id).count(JobItemStatus.SUCCESS.value) == job.succeeded_rows

    def test_unexpected_worker_error_becomes_row_error(self, service, credential, monkeypatch):
        def explode(*args):
            raise RuntimeError("worker crashed")

        monkeypatch.setattr(service, "_submit_group", explode)
        job = service.create_job(credential, "inventory_adjustment", five_rows())

        job = service.run_job(job.id)

        assert job.status == JobStatus.FAILED.value
        assert job.failed_rows == 5
        assert {item.error_message for item in service.jobs.list_items(job.id)} == {"RuntimeError: worker crashed"}

    def test_ledger_failure_finalizes_job(self, service, credential, monkeypatch):
        def broken(*args):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(service, "_dispatch_pending", broken)
        job = service.create_job(credential, "inventory_adjustment", five_rows())

        with pytest.raises(RuntimeError):
            service.run_job(job.id)

        job = service.jobs.get_job(job.id)
        assert job.status == JobStatus.FAILED.value
        assert job.failed_rows == 5
        assert all(s == JobItemStatus.ERROR.value for s in statuses(service, job.id))
        assert "Dispatch aborted" in service.jobs.list_items(job.id)[0].error_message

    def test_saves_finishing_after_a_crash_are_recorded(self, service, credential, fake_accurate):
        fake_accurate.save_delays.update({"BRG-004": 0.3, "BRG-005": 0.3})
        fake_accurate.save_errors["BRG-003"] = requests.exceptions.InvalidHeader("bad header")

        job = service.run_job(service.create_job(credential, "inventory_adjustment", five_rows()).id)

        assert job.status == JobStatus.PARTIAL.value
        assert (job.succeeded_rows, job.failed_rows) == (4, 1)
        items = service.jobs.list_items(job.id)
        assert items[2].error_message == "InvalidHeader: bad header"
        assert items[3].status == JobItemStatus.SUCCESS.value
        assert items[4].status == JobItemStatus.SUCCESS.value
        assert sorted(s["detailItem"][0]["itemNo"] for s in fake_accurate.saved) == [
            "BRG-001",
            "BRG-002",
            "BRG-004",
            "BRG-005",
        ]

        fake_accurate.save_errors.clear()
        job = service.run_job(job.id)

        assert job.status == JobStatus.COMPLETED.value
        assert sorted(s["detailItem"][0]["itemNo"] for s in fake_accurate.saved) == sorted(UNITS)


class TestGroupedRows:
    def test_lines_sharing_reference_saved_together(self, service, credential, fake_accurate):
        rows = five_rows()
        rows[0]["reference_number"] = rows[1]["reference_number"] = "IA.1"
        rows[2]["reference_number"] = "IA.2"

        job = service.run_job(service.create_job(credential, "inventory_adjustment", rows).id)

        assert job.status == JobStatus.COMPLETED.value
        assert job.succeeded_rows == 5
        assert len(fake_accurate.calls_to(SAVE)) == 4
        by_number = {s["number"]: [line["itemNo"] for line in s["detailItem"]] for s in fake_accurate.saved}
        assert by_number["IA.1"] == ["BRG-001", "BRG-002"]
        assert by_number["IA.2"] == ["BRG-003"]
        items = service.jobs.list_items(job.id)
        assert items[0].remote_id == items[1].remote_id
        assert items[0].remote_number == items[1].remote_number == "IA.1"
        assert items[2].remote_id != items[0].remote_id

    def test_rejected_line_fails_its_whole_adjustment(self, service, credential, fake_accurate):
        fake_accurate.reject_items["BRG-002"] = "Kuantitas melebihi stok"
        rows = five_rows()
        rows[0]["reference_number"] = rows[1]["reference_number"] = "IA.1"

        job = service.run_job(service.create_job(credential, "inventory_adjustment", rows).id)

        assert job.status == JobStatus.PARTIAL.value
        assert (job.succeeded_rows, job.failed_rows) == (3, 2)
        items = service.jobs.list_items(job.id)
        assert items[0].error_message == items[1].error_message == "Kuantitas melebihi stok"
        assert "IA.1" not in fake_accurate.used_numbers

    def test_same_reference_on_another_date_is_another_adjustment(self, service, credential, fake_accurate):
        rows = [row("BRG-001", reference_number="IA.1"), row("BRG-002", reference_number="IA.1", date="2024-03-04")]

        job = service.run_job(service.create_job(credential, "inventory_adjustment", rows).id)

        assert len(fake_accurate.calls_to(SAVE)) == 2
        assert job.status == JobStatus.PARTIAL.value
        errors = [item.error_message for item in service.jobs.list_items(job.id) if item.error_message]
        assert errors == ["Nomor IA.1 sudah digunakan"]


class TestResume:
    def test_partial_job_retries_only_error_rows(self, service, credential, fake_accurate):
        fake_accurate.reject_items["BRG-003"] = "Kuantitas melebihi stok"
        job = service.run_job(service.create_job(credential, "inventory_adjustment", five_rows()).id)
        first_ids = {item.row_index: item.remote_id for item in service.jobs.list_items(job.id)}

        fake_accurate.reject_items.clear()
        job = service.run_job(job.id)

        assert job.status == JobStatus.COMPLETED.value
        assert (job.succeeded_rows, job.failed_rows) == (5, 0)
        assert len(fake_accurate.calls_to(SAVE)) == 6
        items = service.jobs.list_items(job.id)
        for item in items:
            if item.row_index != 3:
                assert item.remote_id == first_ids[item.row_index]
        assert items[2].attempts == 2

    def test_lookup_outage_row_retried_on_resume(self, service, credential, fake_accurate):
        fake_accurate.fail_next("/api/item/list.do", 503, 503, 503)
        job = service.run_job(service.create_job(credential, "inventory_adjustment", five_rows()).id)
        assert (job.status, job.failed_rows) == (JobStatus.PARTIAL.value, 1)

        job = service.run_job(job.id)

        assert job.status == JobStatus.COMPLETED.value
        assert len(fake_accurate.calls_to(SAVE)) == 5
        assert service.jobs.list_items(job.id)[0].attempts == 1

    def test_resumed_line_of_saved_adjustment_is_saved_on_its_own(self, service, credential, fake_accurate):
        rows = [row("BRG-001", reference_number="IA.1"), row("BRG-006", reference_number="IA.1")]
        job = service.run_job(service.create_job(credential, "inventory_adjustment", rows).id)
        assert (job.status, job.succeeded_rows) == (JobStatus.PARTIAL.value, 1)

        fake_accurate.add_item("BRG-006", "Mentega", unit="PCS")
        job = service.run_job(job.id)

        assert job.status == JobStatus.COMPLETED.value
        resent = json.loads(fake_accurate.calls_to(SAVE)[-1].body)
        assert "number" not in resent
        assert [line["itemNo"] for line in resent["detailItem"]] == ["BRG-006"]
        items = service.jobs.list_items(job.id)
        assert items[0].remote_number == "IA.1"
        assert items[1].remote_number.startswith("IA.2024.")

    def test_row_still_invalid_stays_in_error(self, service, credential, fake_accurate):
        rows = five_rows()
        rows[4]["item_code"] = "BRG-404"
        job = service.run_job(service.create_job(credential, "inventory_adjustment", rows).id)
        saves = len(fake_accurate.calls_to(SAVE))

        job = service.run_job(job.id)

        assert job.status == JobStatus.PARTIAL.value
        assert job.failed_rows == 1
        assert len(fake_accurate.calls_to(SAVE)) == saves
        assert "not found in Accurate" in service.jobs.list_items(job.id)[4].error_message

    @pytest.mark.parametrize("reject", [False, True])
    def test_final_jobs_are_left_alone(self, service, credential, fake_accurate, reject):
        if reject:
            for code in UNITS:
                fake_accurate.reject_items[code] = "ditolak"
        job = service.run_job(service.create_job(credential, "inventory_adjustment", five_rows()).id)
        calls = len(fake_accurate.requests)

        again = service.run_job(job.id)

        assert again.status == job.status
        assert len(fake_accurate.requests) == calls

    def test_running_job_is_reported_as_is(self, service, credential, fake_accurate):
        job = service.create_job(credential, "inventory_adjustment", five_rows())
        service.jobs.transition(job.id, [JobStatus.PENDING], JobStatus.RUNNING)
        calls = len(fake_accurate.requests)

        job = service.run_job(job.id)

        assert job.status == JobStatus.RUNNING.value
        assert len(fake_accurate.requests) == calls

    def test_owner_scoping(self, service, credential):
        job = service.create_job(credential, "inventory_adjustment", five_rows())
        with pytest.raises(NotFoundError):
            service.run_job(job.id, owner_id="someone-else")
