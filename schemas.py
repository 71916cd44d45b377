# schemas.py - リクエストのバリデーション定義
"""
入力値のバリデーション層。

各モデルはフィールド単位のエラーを全件集めてから失敗する。
parse_payload() が pydantic のエラーを errors.ValidationError に変換し、
details に {field, message} の一覧を詰める。
"""
import re
from datetime import date, time
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

import config
from errors import ValidationError, field_error
from models import CommentType, Role

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")

# Integer 列に入る最大値
MAX_ID = 2 ** 31 - 1

# 汎用エラーメッセージ用の項目名
FIELD_LABELS = {
    "report_date": "日報日付",
    "problem": "課題・相談",
    "plan": "明日やること",
    "visits": "訪問記録",
    "id": "ID",
    "customer_id": "顧客ID",
    "visit_content": "訪問内容",
    "visit_time": "訪問時刻",
    "duration_minutes": "訪問時間",
    "comment_type": "コメント種別",
    "content": "コメント",
    "name": "名前",
    "companyName": "会社名",
    "phone": "電話番号",
    "email": "メールアドレス",
    "address": "住所",
    "notes": "備考",
    "password": "パスワード",
    "role": "役割",
    "department": "部署",
    "user_id": "ユーザーID",
    "date_from": "開始日",
    "date_to": "終了日",
    "keyword": "キーワード",
    "page": "ページ番号",
    "per_page": "表示件数",
}

_GENERIC_MESSAGES = {
    "missing": "{label}を指定してください",
    "int_type": "{label}は整数で指定してください",
    "int_parsing": "{label}は整数で指定してください",
    "int_from_float": "{label}は整数で指定してください",
    "string_type": "{label}は文字列で指定してください",
    "list_type": "{label}は配列で指定してください",
    "model_type": "{label}の形式が不正です",
    "model_attributes_type": "{label}の形式が不正です",
    "dict_type": "{label}の形式が不正です",
}

M = TypeVar("M", bound=BaseModel)


def _invalid(message: str) -> PydanticCustomError:
    return PydanticCustomError("invalid_field", message)


def _check_length(value: Optional[str], max_length: int, message: str, min_length: int = 0,
                  empty_message: Optional[str] = None) -> Optional[str]:
    if value is None:
        return value
    if len(value) < min_length:
        raise _invalid(empty_message or message)
    if len(value) > max_length:
        raise _invalid(message)
    return value


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if len(value) > 255:
        raise _invalid("メールアドレスは255文字以内で入力してください")
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise _invalid("正しいメールアドレスを入力してください")
    return value


def _check_password(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if len(value) < 8:
        raise _invalid("パスワードは8文字以上である必要があります")
    if not re.search(r"[a-zA-Z]", value):
        raise _invalid("パスワードは英字を含む必要があります")
    if not re.search(r"\d", value):
        raise _invalid("パスワードは数字を含む必要があります")
    return value


def _check_id(v, message):
    if v is not None and not 0 < v <= MAX_ID:
        raise _invalid(message)
    return v


def _check_page(v):
    if not 0 < v <= MAX_ID:
        raise _invalid(f"ページ番号は1〜{MAX_ID}で指定してください")
    return v


def _check_per_page(v):
    if v <= 0 or v > config.MAX_PER_PAGE:
        raise _invalid(f"表示件数は1〜{config.MAX_PER_PAGE}で指定してください")
    return v


def parse_date(value: Any, label: str) -> date:
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise _invalid(f"{label}はYYYY-MM-DD形式で入力してください")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise _invalid(f"{label}が不正です")


def _field_name(loc) -> str:
    return ".".join(str(part) for part in loc) or "body"


def _message_for(err: Dict[str, Any]) -> str:
    template = _GENERIC_MESSAGES.get(err["type"])
    if template is None:
        return err["msg"]
    # 配列の添字を飛ばして最後の項目名を使う
    names = [part for part in err["loc"] if isinstance(part, str)]
    label = FIELD_LABELS.get(names[-1], names[-1]) if names else "リクエスト"
    return template.format(label=label)


def validation_details(errors: Sequence[Dict[str, Any]], strip_sources: bool = False) -> List[Dict[str, str]]:
    """pydantic形式のエラー一覧を {field, message} の一覧に変換する"""
    details = []
    for err in errors:
        loc = tuple(err["loc"])
        # FastAPIのエラーは先頭に body / query / path が付く
        if strip_sources and loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        details.append(field_error(_field_name(loc), _message_for(dict(err, loc=loc))))
    return details


def parse_payload(model: Type[M], data: Any) -> M:
    """辞書を検証してモデルを返す。違反は全件まとめて ValidationError にする"""
    if not isinstance(data, dict):
        raise ValidationError(details=[field_error("body", "リクエストボディはJSONオブジェクトで指定してください")])
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(details=validation_details(exc.errors()))


def parse_path_id(value: str, message: str) -> int:
    """パスパラメータのIDを正の整数に変換する"""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message)
    if not 0 < parsed <= MAX_ID:
        raise ValidationError(message)
    return parsed


# ============= 日報 =============

class VisitInput(BaseModel):
    """訪問記録（作成時）"""
    customer_id: StrictInt
    visit_content: str
    visit_time: Optional[time] = None
    duration_minutes: Optional[StrictInt] = None

    @field_validator("customer_id")
    @classmethod
    def check_customer_id(cls, v):
        return _check_id(v, "顧客IDは正の整数で指定してください")

    @field_validator("visit_content")
    @classmethod
    def check_visit_content(cls, v):
        return _check_length(v, 1000, "訪問内容は1000文字以内で入力してください",
                             min_length=1, empty_message="訪問内容を入力してください")

    @field_validator("visit_time", mode="before")
    @classmethod
    def check_visit_time(cls, v):
        if v is None:
            return v
        if not isinstance(v, str) or not TIME_PATTERN.match(v):
            raise _invalid("訪問時刻はHH:MM形式で入力してください")
        hour, minute = v.split(":")
        return time(int(hour), int(minute))

    @field_validator("duration_minutes")
    @classmethod
    def check_duration(cls, v):
        if v is not None and v < 0:
            raise _invalid("訪問時間は0以上の整数で入力してください")
        return v


class VisitUpdateInput(VisitInput):
    """訪問記録（更新時）。idありは既存の更新、なしは新規作成"""
    id: Optional[StrictInt] = None

    @field_validator("id")
    @classmethod
    def check_id(cls, v):
        return _check_id(v, "訪問記録IDは正の整数で指定してください")


class _ReportBody(BaseModel):
    problem: Optional[str] = None
    plan: Optional[str] = None

    @field_validator("problem")
    @classmethod
    def check_problem(cls, v):
        return _check_length(v, 2000, "課題・相談は2000文字以内で入力してください")

    @field_validator("plan")
    @classmethod
    def check_plan(cls, v):
        return _check_length(v, 2000, "明日やることは2000文字以内で入力してください")

    @field_validator("visits", check_fields=False)
    @classmethod
    def check_visits(cls, v):
        if len(v) < 1:
            raise _invalid("訪問記録を少なくとも1件追加してください")
        return v


class ReportCreate(_ReportBody):
    report_date: date
    visits: List[VisitInput]

    @field_validator("report_date", mode="before")
    @classmethod
    def check_report_date(cls, v):
        return parse_date(v, "日報日付")


class ReportUpdate(_ReportBody):
    visits: List[VisitUpdateInput]


class ReportListQuery(BaseModel):
    user_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    customer_id: Optional[int] = None
    page: int = 1
    per_page: int = config.DEFAULT_PER_PAGE

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def check_dates(cls, v, info):
        if v is None or v == "":
            return None
        return parse_date(v, FIELD_LABELS[info.field_name])

    @field_validator("user_id", "customer_id")
    @classmethod
    def check_ids(cls, v, info):
        return _check_id(v, f"{FIELD_LABELS[info.field_name]}は正の整数で指定してください")

    @field_validator("page")
    @classmethod
    def check_page(cls, v):
        return _check_page(v)

    @field_validator("per_page")
    @classmethod
    def check_per_page(cls, v):
        return _check_per_page(v)


# ============= コメント =============

def _check_comment_content(v):
    return _check_length(v, 500, "コメントは500文字以内で入力してください",
                         min_length=1, empty_message="コメントを入力してください")


class CommentCreate(BaseModel):
    comment_type: CommentType
    content: str

    @field_validator("comment_type", mode="before")
    @classmethod
    def check_comment_type(cls, v):
        if v not in [t.value for t in CommentType]:
            raise _invalid("コメント種別はproblem, plan, generalのいずれかを指定してください")
        return v

    @field_validator("content")
    @classmethod
    def check_content(cls, v):
        return _check_comment_content(v)


class CommentUpdate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, v):
        return _check_comment_content(v)


# ============= 顧客 =============

class CustomerInput(BaseModel):
    """顧客作成・更新（更新も全項目を受け取る）"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    company_name: str = Field(alias="companyName")
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_length(v, 100, "顧客名は100文字以内で入力してください",
                             min_length=1, empty_message="顧客名を入力してください")

    @field_validator("company_name")
    @classmethod
    def check_company_name(cls, v):
        return _check_length(v, 200, "会社名は200文字以内で入力してください",
                             min_length=1, empty_message="会社名を入力してください")

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return _check_length(v, 20, "電話番号は20文字以内で入力してください")

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v):
        # 空文字は未入力扱い
        if v == "":
            return None
        return v

    @field_validator("email")
    @classmethod
    def check_email_format(cls, v):
        return _check_email(v)

    @field_validator("address")
    @classmethod
    def check_address(cls, v):
        return _check_length(v, 500, "住所は500文字以内で入力してください")

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v):
        return _check_length(v, 1000, "備考は1000文字以内で入力してください")


class CustomerListQuery(BaseModel):
    keyword: Optional[str] = None
    page: int = 1
    per_page: int = config.DEFAULT_PER_PAGE

    @field_validator("page")
    @classmethod
    def check_page(cls, v):
        return _check_page(v)

    @field_validator("per_page")
    @classmethod
    def check_per_page(cls, v):
        return _check_per_page(v)


# ============= ユーザー =============

def _check_user_name(v):
    return _check_length(v, 100, "氏名は100文字以内で入力してください",
                         min_length=1, empty_message="氏名を入力してください")


def _check_department(v):
    return _check_length(v, 100, "部署は100文字以内で入力してください")


def _check_role(v):
    if v not in [r.value for r in Role]:
        raise _invalid("役割はsalesまたはmanagerを指定してください")
    return v


class UserCreate(BaseModel):
    name: str
    email: str
    password: str
    role: Role
    department: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_user_name(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return _check_password(v)

    @field_validator("role", mode="before")
    @classmethod
    def check_role(cls, v):
        return _check_role(v)

    @field_validator("department")
    @classmethod
    def check_department(cls, v):
        return _check_department(v)


class UserUpdate(BaseModel):
    """指定された項目のみ更新する（department以外はnull不可）"""
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role] = None
    department: Optional[str] = None

    @field_validator("name", "email", "password", "role", mode="before")
    @classmethod
    def check_not_null(cls, v, info):
        if v is None:
            raise _invalid(f"{FIELD_LABELS[info.field_name]}を指定してください")
        if info.field_name == "role":
            return _check_role(v)
        return v

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return _check_user_name(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return _check_password(v)

    @field_validator("department")
    @classmethod
    def check_department(cls, v):
        return _check_department(v)


class UserListQuery(BaseModel):
    role: Optional[Role] = None
    department: Optional[str] = None
    page: int = 1
    per_page: int = config.DEFAULT_PER_PAGE

    @field_validator("page")
    @classmethod
    def check_page(cls, v):
        return _check_page(v)

    @field_validator("per_page")
    @classmethod
    def check_per_page(cls, v):
        return _check_per_page(v)

    @field_validator("role", mode="before")
    @classmethod
    def check_role(cls, v):
        if v is None or v == "":
            return None
        return _check_role(v)


# ============= 認証 =============

class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if not v:
            raise _invalid("メールアドレスを入力してください")
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if not v:
            raise _invalid("パスワードを入力してください")
        return v
