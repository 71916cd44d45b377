# repositories.py - エンティティ毎のリポジトリとユニットオブワーク
from datetime import date
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from models import Comment, Customer, DailyReport, Role, User, VisitRecord

# (日報, 訪問件数, コメント件数)
ReportWithCounts = Tuple[DailyReport, int, int]


def _paginate(query, page: int, per_page: int):
    return query.offset((page - 1) * per_page).limit(per_page)


class UserRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.query(User).filter(User.email == email).first()

    def search(self, role: Optional[Role], department: Optional[str], page: int, per_page: int) -> Tuple[List[User], int]:
        query = self.session.query(User)
        if role:
            query = query.filter(User.role == role)
        if department:
            query = query.filter(User.department.ilike(f"%{department}%"))

        total = query.count()
        users = _paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, per_page).all()
        return users, total

    def add(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def delete(self, user: User) -> None:
        self.session.delete(user)
        self.session.flush()

    def has_reports(self, user_id: int) -> bool:
        return self.session.query(DailyReport.id).filter(DailyReport.user_id == user_id).first() is not None


class CustomerRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, customer_id: int) -> Optional[Customer]:
        return self.session.get(Customer, customer_id)

    def search(self, keyword: Optional[str], page: int, per_page: int) -> Tuple[List[Customer], int]:
        query = self.session.query(Customer)
        if keyword:
            query = query.filter(or_(
                Customer.company_name.ilike(f"%{keyword}%"),
                Customer.name.ilike(f"%{keyword}%"),
            ))

        total = query.count()
        customers = _paginate(query.order_by(Customer.created_at.desc(), Customer.id.desc()), page, per_page).all()
        return customers, total

    def find_existing_ids(self, customer_ids: Iterable[int]) -> Set[int]:
        ids = list(customer_ids)
        if not ids:
            return set()
        rows = self.session.query(Customer.id).filter(Customer.id.in_(ids)).all()
        return {row.id for row in rows}

    def is_referenced(self, customer_id: int) -> bool:
        return self.session.query(VisitRecord.id).filter(VisitRecord.customer_id == customer_id).first() is not None

    def add(self, customer: Customer) -> Customer:
        self.session.add(customer)
        self.session.flush()
        return customer

    def delete(self, customer: Customer) -> None:
        self.session.delete(customer)
        self.session.flush()


class ReportRepository:
    def __init__(self, session: Session):
        self.session = session

    def _with_counts(self):
        visit_count = (
            select(func.count(VisitRecord.id))
            .where(VisitRecord.daily_report_id == DailyReport.id)
            .correlate(DailyReport)
            .scalar_subquery()
        )
        comment_count = (
            select(func.count(Comment.id))
            .where(Comment.daily_report_id == DailyReport.id)
            .correlate(DailyReport)
            .scalar_subquery()
        )
        return self.session.query(DailyReport, visit_count, comment_count)

    def get(self, report_id: int) -> Optional[DailyReport]:
        return self.session.get(DailyReport, report_id)

    def get_by_user_and_date(self, user_id: int, report_date: date) -> Optional[DailyReport]:
        return (
            self.session.query(DailyReport)
            .filter(DailyReport.user_id == user_id, DailyReport.report_date == report_date)
            .first()
        )

    def search(self, user_id: Optional[int], date_from: Optional[date], date_to: Optional[date],
               customer_id: Optional[int], page: int, per_page: int) -> Tuple[List[ReportWithCounts], int]:
        filters = []
        if user_id is not None:
            filters.append(DailyReport.user_id == user_id)
        if date_from is not None:
            filters.append(DailyReport.report_date >= date_from)
        if date_to is not None:
            filters.append(DailyReport.report_date <= date_to)
        if customer_id is not None:
            filters.append(DailyReport.visit_records.any(VisitRecord.customer_id == customer_id))

        total = self.session.query(DailyReport).filter(*filters).count()
        rows = _paginate(
            self._with_counts().filter(*filters).order_by(DailyReport.report_date.desc(), DailyReport.id.desc()),
            page, per_page,
        ).all()
        return [tuple(row) for row in rows], total

    def recent_for_user(self, user_id: int, limit: int) -> List[ReportWithCounts]:
        rows = (
            self._with_counts()
            .filter(DailyReport.user_id == user_id)
            .order_by(DailyReport.report_date.desc(), DailyReport.id.desc())
            .limit(limit)
            .all()
        )
        return [tuple(row) for row in rows]

    def pending_review(self) -> List[ReportWithCounts]:
        """コメントが1件もない日報（承認待ち）"""
        rows = (
            self._with_counts()
            .filter(~DailyReport.comments.any())
            .order_by(DailyReport.report_date.desc(), DailyReport.id.desc())
            .all()
        )
        return [tuple(row) for row in rows]

    def add(self, report: DailyReport) -> DailyReport:
        self.session.add(report)
        self.session.flush()
        return report

    def delete(self, report: DailyReport) -> None:
        self.session.delete(report)
        self.session.flush()


class VisitRecordRepository:
    """訪問記録は必ず親の日報を経由して操作する"""

    def __init__(self, session: Session):
        self.session = session

    def delete_many(self, report: DailyReport, visit_ids: Sequence[int]) -> None:
        targets = set(visit_ids)
        if not targets:
            return
        for visit in list(report.visit_records):
            if visit.id in targets:
                # delete-orphan により flush 時に削除される
                report.visit_records.remove(visit)
        self.session.flush()

    def update_many(self, changes: Sequence[Tuple[VisitRecord, dict]]) -> None:
        for visit, values in changes:
            for field, value in values.items():
                setattr(visit, field, value)
        self.session.flush()

    def add_many(self, report: DailyReport, visits: Sequence[VisitRecord]) -> None:
        for visit in visits:
            report.visit_records.append(visit)
        self.session.flush()


class CommentRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, comment_id: int) -> Optional[Comment]:
        return self.session.get(Comment, comment_id)

    def add(self, comment: Comment) -> Comment:
        self.session.add(comment)
        self.session.flush()
        return comment

    def delete(self, comment: Comment) -> None:
        self.session.delete(comment)
        self.session.flush()


class UnitOfWork:
    """
    1リクエスト分のトランザクション境界。

    with ブロック内で例外が発生した場合はロールバックする。
    確定は commit() を明示的に呼ぶ。
    """

    def __init__(self, session: Session):
        self.session = session
        self.users = UserRepository(session)
        self.customers = CustomerRepository(session)
        self.reports = ReportRepository(session)
        self.visits = VisitRecordRepository(session)
        self.comments = CommentRepository(session)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is not None:
            self.rollback()
        return False

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
