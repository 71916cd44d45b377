# reports.py - 日報の作成・更新（訪問記録の差分反映）・参照・削除
"""
日報と訪問記録の突き合わせ。

更新時は送られてきた訪問記録の一覧を既存の訪問記録とIDで突き合わせ、
削除・更新・作成の3つに分けてから、1トランザクションで
削除 → 更新 → 作成 の順に反映する。変更のない訪問記録はIDを維持する。
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Sequence

from sqlalchemy.exc import IntegrityError

from auth import AuthenticatedContext
from errors import DuplicateReportDateError, NotFoundError, ValidationError, field_error
from models import DailyReport, VisitRecord
from policy import Action, authorize
from repositories import UnitOfWork
from schemas import ReportCreate, ReportListQuery, ReportUpdate, VisitInput, VisitUpdateInput, parse_payload

logger = logging.getLogger(__name__)

DUPLICATE_DATE_MESSAGE = DuplicateReportDateError.default_message


@dataclass
class VisitChangeSet:
    to_delete: List[int] = field(default_factory=list)
    to_update: List[VisitUpdateInput] = field(default_factory=list)
    to_create: List[VisitUpdateInput] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_delete or self.to_update or self.to_create)


def _join_ids(ids: Iterable[int]) -> str:
    return ", ".join(str(i) for i in ids)


def plan_visit_changes(existing_ids: Iterable[int], visits: Sequence[VisitUpdateInput]) -> VisitChangeSet:
    """
    既存の訪問記録IDと送信された訪問記録から、削除・更新・作成の集合を求める。

    idなしは新規作成、idありは更新。この日報に属さないidや、
    同じidが複数回指定された場合は ValidationError。
    """
    existing = set(existing_ids)
    with_id = [v for v in visits if v.id is not None]
    without_id = [v for v in visits if v.id is None]

    seen = set()
    duplicated = []
    for v in with_id:
        if v.id in seen and v.id not in duplicated:
            duplicated.append(v.id)
        seen.add(v.id)
    if duplicated:
        raise ValidationError("訪問記録IDが重複しています", details=[
            field_error("visits", f"訪問記録ID {_join_ids(duplicated)} が重複しています"),
        ])

    foreign = sorted(seen - existing)
    if foreign:
        raise ValidationError("この日報に存在しない訪問記録が指定されています", details=[
            field_error("visits", f"訪問記録ID {_join_ids(foreign)} はこの日報に存在しません"),
        ])

    return VisitChangeSet(
        to_delete=sorted(existing - seen),
        to_update=with_id,
        to_create=without_id,
    )


def ensure_customers_exist(uow: UnitOfWork, visits: Sequence[VisitInput]) -> None:
    # 同じ顧客への複数訪問は許可する。存在確認のときだけ重複を除く
    customer_ids = list(dict.fromkeys(v.customer_id for v in visits))
    found = uow.customers.find_existing_ids(customer_ids)
    missing = [cid for cid in customer_ids if cid not in found]
    if missing:
        raise ValidationError("存在しない顧客が指定されています", details=[
            field_error("visits", f"顧客ID {_join_ids(missing)} が存在しません"),
        ])


def visit_values(visit: VisitInput) -> dict:
    return {
        "customer_id": visit.customer_id,
        "visit_content": visit.visit_content,
        "visit_time": visit.visit_time,
        "duration_minutes": visit.duration_minutes,
    }


def _blank_to_none(value):
    return value or None


def _duplicate_date() -> DuplicateReportDateError:
    return DuplicateReportDateError(details=[field_error("report_date", DUPLICATE_DATE_MESSAGE)])


class ReportService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def _load(self, report_id: int) -> DailyReport:
        report = self.uow.reports.get(report_id)
        if report is None:
            raise NotFoundError("日報が見つかりません")
        return report

    def create(self, ctx: AuthenticatedContext, payload: dict) -> DailyReport:
        authorize(ctx, Action.REPORT_CREATE)
        data = parse_payload(ReportCreate, payload)
        ensure_customers_exist(self.uow, data.visits)

        if self.uow.reports.get_by_user_and_date(ctx.user_id, data.report_date) is not None:
            raise _duplicate_date()

        report = DailyReport(
            user_id=ctx.user_id,
            report_date=data.report_date,
            problem=_blank_to_none(data.problem),
            plan=_blank_to_none(data.plan),
        )
        report.visit_records = [VisitRecord(**visit_values(v)) for v in data.visits]

        with self.uow:
            try:
                self.uow.reports.add(report)
            except IntegrityError:
                # 同時作成で一意制約に違反した場合も重複エラーとして扱う
                self.uow.rollback()
                if self.uow.reports.get_by_user_and_date(ctx.user_id, data.report_date) is not None:
                    raise _duplicate_date()
                raise
            self.uow.commit()

        logger.info("report created id=%s user_id=%s date=%s visits=%d",
                    report.id, ctx.user_id, data.report_date, len(data.visits))
        return report

    def get(self, ctx: AuthenticatedContext, report_id: int) -> DailyReport:
        report = self._load(report_id)
        authorize(ctx, Action.REPORT_VIEW, report.user_id)
        return report

    def search(self, ctx: AuthenticatedContext, params: dict):
        query = parse_payload(ReportListQuery, params)
        authorize(ctx, Action.REPORT_LIST, query.user_id)

        # 営業は常に自分の日報のみ
        user_id = query.user_id if ctx.is_manager else ctx.user_id
        rows, total = self.uow.reports.search(
            user_id=user_id,
            date_from=query.date_from,
            date_to=query.date_to,
            customer_id=query.customer_id,
            page=query.page,
            per_page=query.per_page,
        )
        return rows, total, query

    def update(self, ctx: AuthenticatedContext, report_id: int, payload: dict) -> DailyReport:
        report = self._load(report_id)
        authorize(ctx, Action.REPORT_UPDATE, report.user_id)

        data = parse_payload(ReportUpdate, payload)
        ensure_customers_exist(self.uow, data.visits)

        current = {v.id: v for v in report.visit_records}
        changes = plan_visit_changes(current.keys(), data.visits)

        with self.uow:
            # 削除 → 更新 → 作成 の順で反映する
            self.uow.visits.delete_many(report, changes.to_delete)
            self.uow.visits.update_many([(current[v.id], visit_values(v)) for v in changes.to_update])
            self.uow.visits.add_many(report, [VisitRecord(**visit_values(v)) for v in changes.to_create])

            if "problem" in data.model_fields_set:
                report.problem = _blank_to_none(data.problem)
            if "plan" in data.model_fields_set:
                report.plan = _blank_to_none(data.plan)
            # 訪問記録だけの変更でも日報の更新日時を進める
            report.updated_at = datetime.utcnow()
            self.uow.commit()

        logger.info("report updated id=%s deleted=%s updated=%d created=%d",
                    report.id, changes.to_delete, len(changes.to_update), len(changes.to_create))
        return report

    def delete(self, ctx: AuthenticatedContext, report_id: int) -> None:
        report = self._load(report_id)
        authorize(ctx, Action.REPORT_DELETE, report.user_id)

        with self.uow:
            self.uow.reports.delete(report)
            self.uow.commit()
        logger.info("report deleted id=%s", report_id)
