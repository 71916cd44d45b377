import os

# アプリのimport前に設定する
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import date, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token, get_password_hash
from database import build_engine, get_db
from main import app
from models import Base, Comment, CommentType, Customer, DailyReport, Role, User, VisitRecord

PASSWORD = "Test1234"
_hashed = {}


def hashed_password():
    # bcryptは遅いのでテスト全体で1回だけハッシュ化する
    if "value" not in _hashed:
        _hashed["value"] = get_password_hash(PASSWORD)
    return _hashed["value"]


@pytest.fixture
def engine():
    engine = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, name, email, role, department="営業部"):
    user = User(name=name, email=email, hashed_password=hashed_password(), role=role, department=department)
    db.add(user)
    db.commit()
    return user


def make_customer(db, name="田中一郎", company_name="株式会社テストA"):
    customer = Customer(name=name, company_name=company_name)
    db.add(customer)
    db.commit()
    return customer


def make_report(db, user, report_date, visits, problem=None, plan=None):
    """visits は (customer, content, visit_time) のリスト"""
    report = DailyReport(user_id=user.id, report_date=report_date, problem=problem, plan=plan)
    report.visit_records = [
        VisitRecord(customer_id=c.id, visit_content=content, visit_time=t) for c, content, t in visits
    ]
    db.add(report)
    db.commit()
    return report


def make_comment(db, report, author, content="確認しました", comment_type=CommentType.general):
    comment = Comment(daily_report_id=report.id, user_id=author.id, comment_type=comment_type, content=content)
    db.add(comment)
    db.commit()
    return comment


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}


@pytest.fixture
def sales(db):
    return make_user(db, "営業太郎", "sales@example.com", Role.sales)


@pytest.fixture
def other_sales(db):
    return make_user(db, "営業花子", "sales2@example.com", Role.sales)


@pytest.fixture
def manager(db):
    return make_user(db, "上長一郎", "manager@example.com", Role.manager)


@pytest.fixture
def customer(db):
    return make_customer(db)


@pytest.fixture
def customer_b(db):
    return make_customer(db, name="佐藤花子", company_name="株式会社テストB")


@pytest.fixture
def report(db, sales, customer, customer_b):
    return make_report(db, sales, date(2025, 12, 18), [
        (customer, "提案を実施", time(10, 0)),
        (customer_b, "見積もり提出", time(14, 30)),
    ], problem="価格交渉", plan="資料作成")
