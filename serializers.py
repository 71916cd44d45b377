# serializers.py - レスポンス用の辞書変換
from datetime import date, datetime, time
from typing import List, Optional

from models import Comment, Customer, DailyReport, User, VisitRecord


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value else None


def sorted_visits(visits) -> List[VisitRecord]:
    """訪問時刻の昇順。時刻未入力は最後、同時刻はID順"""
    return sorted(
        visits,
        key=lambda v: (v.visit_time is None, v.visit_time or time.min, v.id or 0),
    )


def _value(enum_or_str):
    return getattr(enum_or_str, "value", enum_or_str)


# ============= 日報 =============

def report_summary(report: DailyReport) -> dict:
    """作成・更新APIのレスポンス"""
    return {
        "id": report.id,
        "report_date": format_date(report.report_date),
        "problem": report.problem,
        "plan": report.plan,
        "visits": [
            {
                "id": v.id,
                "customer_id": v.customer_id,
                "visit_content": v.visit_content,
                "visit_time": format_time(v.visit_time),
                "duration_minutes": v.duration_minutes,
            } for v in sorted_visits(report.visit_records)
        ],
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }


def report_detail(report: DailyReport) -> dict:
    return {
        "id": report.id,
        "user": {
            "id": report.user.id,
            "name": report.user.name,
            "department": report.user.department,
        },
        "report_date": format_date(report.report_date),
        "problem": report.problem,
        "plan": report.plan,
        "visits": [
            {
                "id": v.id,
                "customer": {
                    "id": v.customer.id,
                    "name": v.customer.name,
                    "company_name": v.customer.company_name,
                },
                "visit_content": v.visit_content,
                "visit_time": format_time(v.visit_time),
                "duration_minutes": v.duration_minutes,
                "created_at": _iso(v.created_at),
            } for v in sorted_visits(report.visit_records)
        ],
        "comments": [comment_detail(c) for c in report.comments],
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }


def report_list_item(report: DailyReport, visit_count: int, comment_count: int) -> dict:
    return {
        "id": report.id,
        "user": {"id": report.user.id, "name": report.user.name},
        "report_date": format_date(report.report_date),
        "visit_count": visit_count,
        "comment_count": comment_count,
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }


def pagination(page: int, per_page: int, total: int, camel_case: bool = False) -> dict:
    total_pages = (total + per_page - 1) // per_page
    if camel_case:
        return {"currentPage": page, "perPage": per_page, "totalPages": total_pages, "totalCount": total}
    return {"current_page": page, "per_page": per_page, "total_pages": total_pages, "total_count": total}


# ============= コメント =============

def comment_detail(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "user": {
            "id": comment.user.id,
            "name": comment.user.name,
            "role": _value(comment.user.role),
        },
        "comment_type": _value(comment.comment_type),
        "content": comment.content,
        "created_at": _iso(comment.created_at),
    }


def comment_updated(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "updated_at": _iso(comment.updated_at),
    }


# ============= 顧客・ユーザー =============

def customer_detail(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "companyName": customer.company_name,
        "phone": customer.phone,
        "email": customer.email,
        "address": customer.address,
        "notes": customer.notes,
        "createdAt": _iso(customer.created_at),
        "updatedAt": _iso(customer.updated_at),
    }


def user_detail(user: User) -> dict:
    # パスワードハッシュは含めない
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": _value(user.role),
        "department": user.department,
        "createdAt": _iso(user.created_at),
        "updatedAt": _iso(user.updated_at),
    }


def login_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": _value(user.role),
        "department": user.department,
    }


def me(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": _value(user.role),
        "department": user.department,
        "created_at": _iso(user.created_at),
    }
