from datetime import date, datetime

from auth import AuthenticatedContext
from conftest import auth_header, make_comment, make_report
from dashboard import build_dashboard
from repositories import UnitOfWork


def context_for(user):
    return AuthenticatedContext(user_id=user.id, email=user.email, role=user.role)


def test_sales_dashboard(db, sales, customer, report):
    data = build_dashboard(UnitOfWork(db), context_for(sales), date(2025, 12, 18))

    assert data["today"] == {"date": "2025-12-18", "has_report": True, "report_id": report.id}
    assert data["recent_reports"] == [
        {"id": report.id, "report_date": "2025-12-18", "visit_count": 2, "comment_count": 0},
    ]
    assert "pending_reports" not in data


def test_sales_recent_reports_are_limited(db, sales, customer):
    for day in range(1, 13):
        make_report(db, sales, date(2025, 11, day), [(customer, "x", None)])
    data = build_dashboard(UnitOfWork(db), context_for(sales), date(2025, 12, 1))

    assert data["today"]["has_report"] is False
    assert data["today"]["report_id"] is None
    assert len(data["recent_reports"]) == 10
    assert data["recent_reports"][0]["report_date"] == "2025-11-12"


def test_manager_sees_uncommented_reports(db, manager, sales, other_sales, customer, report):
    commented = make_report(db, other_sales, date(2025, 12, 17), [(customer, "x", None)])
    make_comment(db, commented, manager)

    data = build_dashboard(UnitOfWork(db), context_for(manager), date(2025, 12, 18))

    assert data["recent_reports"] == []
    assert data["pending_reports"] == [{
        "id": report.id,
        "user": {"id": sales.id, "name": "営業太郎"},
        "report_date": "2025-12-18",
        "visit_count": 2,
        "comment_count": 0,
    }]


def test_dashboard_api(client, sales):
    response = client.get("/api/dashboard", headers=auth_header(sales))

    assert response.status_code == 200
    today = response.json()["data"]["today"]
    assert today["date"] == datetime.utcnow().date().isoformat()
    assert today["has_report"] is False
