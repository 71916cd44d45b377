# dashboard.py - 役割別のダッシュボード集計
from datetime import date

from auth import AuthenticatedContext
from repositories import UnitOfWork
from serializers import format_date

RECENT_REPORT_LIMIT = 10


def build_dashboard(uow: UnitOfWork, ctx: AuthenticatedContext, today: date) -> dict:
    """
    今日の日報状況と、役割に応じた一覧を返す。

    - 営業: 自分の直近10件の日報
    - 上長: コメントが0件の日報（承認待ち）すべて
    件数は毎回関連行を数えて求める。
    """
    today_report = uow.reports.get_by_user_and_date(ctx.user_id, today)
    data = {
        "today": {
            "date": format_date(today),
            "has_report": today_report is not None,
            "report_id": today_report.id if today_report is not None else None,
        },
        "recent_reports": [],
    }

    if not ctx.is_manager:
        data["recent_reports"] = [
            {
                "id": report.id,
                "report_date": format_date(report.report_date),
                "visit_count": visit_count,
                "comment_count": comment_count,
            } for report, visit_count, comment_count in uow.reports.recent_for_user(ctx.user_id, RECENT_REPORT_LIMIT)
        ]
        return data

    data["pending_reports"] = [
        {
            "id": report.id,
            "user": {"id": report.user.id, "name": report.user.name},
            "report_date": format_date(report.report_date),
            "visit_count": visit_count,
            "comment_count": comment_count,
        } for report, visit_count, comment_count in uow.reports.pending_review()
    ]
    return data
