from datetime import date, time

import pytest

from auth import AuthenticatedContext
from errors import DuplicateReportDateError, ErrorCode, ForbiddenError, NotFoundError, ValidationError
from fakes import FakeUnitOfWork
from models import Role
from reports import ReportService, plan_visit_changes
from schemas import VisitUpdateInput

SALES = AuthenticatedContext(user_id=1, email="sales@example.com", role=Role.sales)
OTHER_SALES = AuthenticatedContext(user_id=2, email="sales2@example.com", role=Role.sales)
MANAGER = AuthenticatedContext(user_id=9, email="manager@example.com", role=Role.manager)


def visit(**kwargs):
    kwargs.setdefault("customer_id", 1)
    kwargs.setdefault("visit_content", "訪問")
    return VisitUpdateInput(**kwargs)


def create_payload(report_date="2025-12-18", visits=None):
    return {
        "report_date": report_date,
        "problem": "課題",
        "plan": "予定",
        "visits": visits or [
            {"customer_id": 1, "visit_content": "提案", "visit_time": "10:00"},
            {"customer_id": 2, "visit_content": "見積", "visit_time": "14:30", "duration_minutes": 60},
        ],
    }


@pytest.fixture
def uow():
    return FakeUnitOfWork(customer_ids=[1, 2, 3])


@pytest.fixture
def existing(uow):
    return ReportService(uow).create(SALES, create_payload())


class TestPlanVisitChanges:
    def test_partitions_by_id(self):
        changes = plan_visit_changes([10, 11, 12], [visit(id=11), visit(), visit(id=10)])
        assert changes.to_delete == [12]
        assert [v.id for v in changes.to_update] == [11, 10]
        assert len(changes.to_create) == 1

    def test_all_new_deletes_everything(self):
        changes = plan_visit_changes([1, 2], [visit(), visit()])
        assert changes.to_delete == [1, 2]
        assert changes.to_update == []
        assert len(changes.to_create) == 2

    def test_foreign_ids_are_named(self):
        with pytest.raises(ValidationError) as excinfo:
            plan_visit_changes([1, 2], [visit(id=1), visit(id=7), visit(id=5)])
        assert excinfo.value.details[0]["field"] == "visits"
        assert "5, 7" in excinfo.value.details[0]["message"]

    def test_same_id_twice_is_rejected(self):
        with pytest.raises(ValidationError) as excinfo:
            plan_visit_changes([1], [visit(id=1), visit(id=1)])
        assert "1" in excinfo.value.details[0]["message"]

    def test_unchanged_set_is_update_only(self):
        changes = plan_visit_changes([1, 2], [visit(id=1), visit(id=2)])
        assert changes.to_delete == []
        assert changes.to_create == []
        assert not changes.is_empty


class TestCreate:
    def test_creates_report_with_visits(self, uow, existing):
        assert existing.user_id == SALES.user_id
        assert existing.report_date == date(2025, 12, 18)
        assert [v.visit_content for v in existing.visit_records] == ["提案", "見積"]
        assert existing.visit_records[0].visit_time == time(10, 0)
        assert all(v.id is not None for v in existing.visit_records)
        assert uow.commits == 1

    def test_duplicate_date_is_dedicated_error(self, uow, existing):
        with pytest.raises(DuplicateReportDateError) as excinfo:
            ReportService(uow).create(SALES, create_payload())
        assert excinfo.value.code == ErrorCode.VALIDATION_ERROR
        assert excinfo.value.details[0]["field"] == "report_date"
        assert "既に登録されています" in excinfo.value.message

    def test_same_date_for_other_user_is_allowed(self, uow, existing):
        report = ReportService(uow).create(OTHER_SALES, create_payload())
        assert report.id != existing.id

    def test_missing_customers_are_named(self, uow):
        payload = create_payload(visits=[
            {"customer_id": 1, "visit_content": "a"},
            {"customer_id": 8, "visit_content": "b"},
            {"customer_id": 4, "visit_content": "c"},
            {"customer_id": 8, "visit_content": "d"},
        ])
        with pytest.raises(ValidationError) as excinfo:
            ReportService(uow).create(SALES, payload)
        assert "8, 4" in excinfo.value.details[0]["message"]
        assert uow.reports.items == {}

    def test_duplicate_customer_ids_are_looked_up_once(self, uow):
        payload = create_payload(visits=[
            {"customer_id": 1, "visit_content": "午前"},
            {"customer_id": 1, "visit_content": "午後"},
        ])
        report = ReportService(uow).create(SALES, payload)
        assert uow.customers.lookups == [[1]]
        assert len(report.visit_records) == 2

    def test_empty_visits_rejected(self, uow):
        with pytest.raises(ValidationError):
            ReportService(uow).create(SALES, dict(create_payload(), visits=[]))


class TestUpdate:
    def test_reconciles_delete_update_create(self, uow, existing):
        kept, dropped = existing.visit_records
        report = ReportService(uow).update(SALES, existing.id, {
            "problem": "新しい課題",
            "visits": [
                {"id": kept.id, "customer_id": 3, "visit_content": "再訪問"},
                {"customer_id": 2, "visit_content": "新規訪問", "visit_time": "16:00"},
            ],
        })

        ids = {v.id for v in report.visit_records}
        new_ids = ids - {kept.id}
        assert kept.id in ids
        assert dropped.id not in ids
        assert len(new_ids) == 1
        assert kept.customer_id == 3
        assert kept.visit_content == "再訪問"
        assert report.problem == "新しい課題"
        # 送られなかった項目は変更しない
        assert report.plan == "予定"

    def test_visits_only_change_touches_report(self, uow, existing):
        first = existing.visit_records[0]
        report = ReportService(uow).update(SALES, existing.id, {
            "visits": [{"id": first.id, "customer_id": 1, "visit_content": "内容だけ変更"}],
        })
        assert report.updated_at is not None

    def test_applies_in_delete_update_create_order(self, uow, existing):
        first, second = existing.visit_records
        ReportService(uow).update(SALES, existing.id, {
            "visits": [
                {"id": first.id, "customer_id": 1, "visit_content": "更新"},
                {"customer_id": 1, "visit_content": "追加"},
            ],
        })
        assert uow.visits.calls == [("delete", [second.id]), ("update", [first.id]), ("create", 1)]

    def test_same_payload_twice_creates_nothing_new(self, uow, existing):
        payload = {
            "visits": [
                {"id": v.id, "customer_id": v.customer_id, "visit_content": v.visit_content}
                for v in existing.visit_records
            ],
        }
        before = sorted(v.id for v in existing.visit_records)
        ReportService(uow).update(SALES, existing.id, payload)
        ReportService(uow).update(SALES, existing.id, payload)
        assert sorted(v.id for v in existing.visit_records) == before
        assert ("create", 0) in uow.visits.calls
        assert all(call[1] in ([], 0) for call in uow.visits.calls if call[0] in ("delete", "create"))

    def test_foreign_visit_id_leaves_report_untouched(self, uow, existing):
        other = ReportService(uow).create(OTHER_SALES, create_payload())
        foreign_id = other.visit_records[0].id
        before = [(v.id, v.visit_content) for v in existing.visit_records]

        with pytest.raises(ValidationError) as excinfo:
            ReportService(uow).update(SALES, existing.id, {
                "visits": [{"id": foreign_id, "customer_id": 1, "visit_content": "乗っ取り"}],
            })
        assert str(foreign_id) in excinfo.value.details[0]["message"]
        assert [(v.id, v.visit_content) for v in existing.visit_records] == before
        assert uow.visits.calls == []

    def test_empty_visits_rejected(self, uow, existing):
        with pytest.raises(ValidationError) as excinfo:
            ReportService(uow).update(SALES, existing.id, {"visits": []})
        assert excinfo.value.details[0]["field"] == "visits"

    def test_unknown_customer_rejected(self, uow, existing):
        with pytest.raises(ValidationError) as excinfo:
            ReportService(uow).update(SALES, existing.id, {
                "visits": [{"customer_id": 99, "visit_content": "x"}],
            })
        assert "99" in excinfo.value.details[0]["message"]

    def test_only_owner_may_update(self, uow, existing):
        for ctx in (OTHER_SALES, MANAGER):
            with pytest.raises(ForbiddenError):
                ReportService(uow).update(ctx, existing.id, {"visits": []})

    def test_missing_report(self, uow):
        with pytest.raises(NotFoundError):
            ReportService(uow).update(SALES, 404, {"visits": []})


class TestDeleteAndView:
    def test_manager_can_view_any_report(self, uow, existing):
        assert ReportService(uow).get(MANAGER, existing.id) is existing

    def test_other_sales_cannot_view(self, uow, existing):
        with pytest.raises(ForbiddenError):
            ReportService(uow).get(OTHER_SALES, existing.id)

    def test_owner_deletes(self, uow, existing):
        ReportService(uow).delete(SALES, existing.id)
        assert uow.reports.items == {}

    def test_manager_cannot_delete(self, uow, existing):
        with pytest.raises(ForbiddenError):
            ReportService(uow).delete(MANAGER, existing.id)
