# models.py - 日報システムのデータベースモデル定義
import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Time, Text, Enum, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# 削除済みのIDは再利用しない（SQLiteは sqlite_autoincrement が必要）


class Role(str, enum.Enum):
    sales = "sales"
    manager = "manager"


class CommentType(str, enum.Enum):
    problem = "problem"
    plan = "plan"
    general = "general"


class User(Base):
    """ログインユーザー（営業・上長）"""
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(Role, name="role"), nullable=False)
    department = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # リレーション
    daily_reports = relationship("DailyReport", back_populates="user", passive_deletes="all")
    comments = relationship("Comment", back_populates="user", cascade="all, delete-orphan")


class Customer(Base):
    """顧客マスタ"""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    company_name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 参照中の顧客は削除不可（外部キーはRESTRICT）
    visit_records = relationship("VisitRecord", back_populates="customer", passive_deletes="all")


class DailyReport(Base):
    """日報（1ユーザー1日1件）"""
    __tablename__ = "daily_reports"
    __table_args__ = (
        UniqueConstraint("user_id", "report_date", name="uq_daily_reports_user_id_report_date"),
        Index("ix_daily_reports_report_date", "report_date"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_date = Column(Date, nullable=False)
    problem = Column(Text, nullable=True)  # 課題・相談
    plan = Column(Text, nullable=True)  # 明日やること
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # リレーション
    user = relationship("User", back_populates="daily_reports")
    visit_records = relationship(
        "VisitRecord", back_populates="daily_report", cascade="all, delete-orphan"
    )
    comments = relationship(
        "Comment", back_populates="daily_report", cascade="all, delete-orphan",
        order_by="Comment.id",
    )


class VisitRecord(Base):
    """訪問記録（日報の作成・更新時のみ操作される）"""
    __tablename__ = "visit_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    daily_report_id = Column(
        Integer, ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    visit_content = Column(Text, nullable=False)
    visit_time = Column(Time, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # リレーション
    daily_report = relationship("DailyReport", back_populates="visit_records")
    customer = relationship("Customer", back_populates="visit_records")


class Comment(Base):
    """上長コメント"""
    __tablename__ = "comments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    daily_report_id = Column(
        Integer, ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # 投稿者
    comment_type = Column(Enum(CommentType, name="comment_type"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # リレーション
    daily_report = relationship("DailyReport", back_populates="comments")
    user = relationship("User", back_populates="comments")
