# main.py - FastAPIメインアプリケーション（営業日報システム）
import logging
from datetime import datetime
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from auth import AuthenticatedContext, get_current_context, get_password_hash
from comments import CommentService
from customers import CustomerService
from dashboard import build_dashboard
from database import SessionLocal, engine, get_db
from errors import ApiError, ErrorCode, ValidationError, error_response, success_response
from models import Base, Customer, Role, User
from reports import ReportService
from repositories import UnitOfWork
from schemas import parse_path_id, validation_details
import serializers
from users import UserService, current_user, login

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="営業日報システム", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============= 例外ハンドラ =============

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = validation_details(exc.errors(), strip_sources=True)
    return JSONResponse(
        status_code=422,
        content=error_response(ErrorCode.VALIDATION_ERROR, "入力値が不正です", details),
    )


_HTTP_ERROR_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else "HTTP_ERROR")
    return JSONResponse(status_code=exc.status_code, content=error_response(code, str(exc.detail)))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    # 内部情報はレスポンスに含めない
    logger.exception("Unexpected error in %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_response(ErrorCode.INTERNAL_ERROR, "サーバーエラーが発生しました"),
    )


# ============= 共通処理 =============

def get_uow(db: Session = Depends(get_db)) -> UnitOfWork:
    return UnitOfWork(db)


async def json_body(request: Request) -> Any:
    """
    リクエストボディをJSONとして読む（空ならNone）。

    ボディの検証は認証・認可の後でサービスが行うため、FastAPIのモデル検証は使わない。
    ルートでは認証の依存関係より後に置くこと。
    """
    body = await request.body()
    if not body:
        return None
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("リクエストボディのJSON形式が不正です")


def no_content() -> Response:
    return Response(status_code=204)


# ============= 認証API =============

@app.post("/api/auth/login")
def login_api(payload: Any = Depends(json_body), uow: UnitOfWork = Depends(get_uow)):
    token, user = login(uow, payload)
    return success_response({"token": token, "user": serializers.login_user(user)})


@app.post("/api/auth/logout")
def logout_api(ctx: AuthenticatedContext = Depends(get_current_context)):
    """トークンはステートレスなのでクライアント側で破棄する"""
    logger.info("logout user_id=%s", ctx.user_id)
    return success_response({"message": "ログアウトしました"})


@app.get("/api/auth/me")
def me_api(ctx: AuthenticatedContext = Depends(get_current_context), uow: UnitOfWork = Depends(get_uow)):
    return success_response(serializers.me(current_user(uow, ctx)))


# ============= ダッシュボード =============

@app.get("/api/dashboard")
def dashboard_api(ctx: AuthenticatedContext = Depends(get_current_context), uow: UnitOfWork = Depends(get_uow)):
    # 日付はUTCの暦日で扱う
    return success_response(build_dashboard(uow, ctx, datetime.utcnow().date()))


# ============= 日報API =============

@app.get("/api/reports")
def list_reports(
    request: Request,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    """日報一覧・検索（営業は自分の日報のみ）"""
    rows, total, query = ReportService(uow).search(ctx, dict(request.query_params))
    return success_response({
        "reports": [serializers.report_list_item(*row) for row in rows],
        "pagination": serializers.pagination(query.page, query.per_page, total),
    })


@app.post("/api/reports", status_code=201)
def create_report(
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    """日報作成（訪問記録も同時に作成）"""
    report = ReportService(uow).create(ctx, payload)
    return success_response(serializers.report_summary(report))


@app.get("/api/reports/{report_id}")
def get_report(
    report_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    report = ReportService(uow).get(ctx, parse_path_id(report_id, "不正な日報IDです"))
    return success_response(serializers.report_detail(report))


@app.put("/api/reports/{report_id}")
def update_report(
    report_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    """日報更新（訪問記録は差分を反映）"""
    target_id = parse_path_id(report_id, "不正な日報IDです")
    report = ReportService(uow).update(ctx, target_id, payload)
    return success_response(serializers.report_summary(report))


@app.delete("/api/reports/{report_id}", status_code=204)
def delete_report(
    report_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    ReportService(uow).delete(ctx, parse_path_id(report_id, "不正な日報IDです"))
    return no_content()


# ============= コメントAPI =============

@app.post("/api/reports/{report_id}/comments", status_code=201)
def create_comment(
    report_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    """コメント追加（上長のみ）"""
    target_id = parse_path_id(report_id, "無効な日報IDです")
    comment = CommentService(uow).create(ctx, target_id, payload)
    return success_response(serializers.comment_detail(comment))


@app.put("/api/comments/{comment_id}")
def update_comment(
    comment_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    """コメント更新（投稿者本人のみ）"""
    target_id = parse_path_id(comment_id, "無効なコメントIDです")
    comment = CommentService(uow).update(ctx, target_id, payload)
    return success_response(serializers.comment_updated(comment))


@app.delete("/api/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    """コメント削除（投稿者本人のみ）"""
    CommentService(uow).delete(ctx, parse_path_id(comment_id, "無効なコメントIDです"))
    return no_content()


# ============= 顧客API =============

@app.get("/api/customers")
def list_customers(
    request: Request,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    """顧客一覧・検索（会社名・顧客名の部分一致）"""
    customers, total, query = CustomerService(uow).search(ctx, dict(request.query_params))
    return success_response({
        "customers": [serializers.customer_detail(c) for c in customers],
        "pagination": serializers.pagination(query.page, query.per_page, total, camel_case=True),
    })


@app.post("/api/customers", status_code=201)
def create_customer(
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    customer = CustomerService(uow).create(ctx, payload)
    return success_response(serializers.customer_detail(customer))


@app.get("/api/customers/{customer_id}")
def get_customer(
    customer_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    customer = CustomerService(uow).get(ctx, parse_path_id(customer_id, "無効な顧客IDです"))
    return success_response(serializers.customer_detail(customer))


@app.put("/api/customers/{customer_id}")
def update_customer(
    customer_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    target_id = parse_path_id(customer_id, "無効な顧客IDです")
    customer = CustomerService(uow).update(ctx, target_id, payload)
    return success_response(serializers.customer_detail(customer))


@app.delete("/api/customers/{customer_id}", status_code=204)
def delete_customer(
    customer_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    """顧客削除（日報で使用中の顧客は削除不可）"""
    CustomerService(uow).delete(ctx, parse_path_id(customer_id, "無効な顧客IDです"))
    return no_content()


# ============= ユーザー管理API（上長のみ） =============

@app.get("/api/users")
def list_users(
    request: Request,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    users, total, query = UserService(uow).search(ctx, dict(request.query_params))
    return success_response({
        "users": [serializers.user_detail(u) for u in users],
        "pagination": serializers.pagination(query.page, query.per_page, total, camel_case=True),
    })


@app.post("/api/users", status_code=201)
def create_user(
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    user = UserService(uow).create(ctx, payload)
    return success_response(serializers.user_detail(user))


@app.get("/api/users/{user_id}")
def get_user(
    user_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    user = UserService(uow).get(ctx, parse_path_id(user_id, "無効なユーザーIDです"))
    return success_response(serializers.user_detail(user))


@app.put("/api/users/{user_id}")
def update_user(
    user_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    payload: Any = Depends(json_body),
    uow: UnitOfWork = Depends(get_uow),
):
    target_id = parse_path_id(user_id, "無効なユーザーIDです")
    user = UserService(uow).update(ctx, target_id, payload)
    return success_response(serializers.user_detail(user))


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    ctx: AuthenticatedContext = Depends(get_current_context),
    uow: UnitOfWork = Depends(get_uow),
):
    """ユーザー削除（日報を作成済みのユーザーは削除不可）"""
    UserService(uow).delete(ctx, parse_path_id(user_id, "無効なユーザーIDです"))
    return no_content()


# ============= 初期データ作成（初回起動時） =============

def create_initial_data(db: Session):
    """ユーザーが1人もいない場合にデモ用のユーザー・顧客を作成する"""
    if db.query(User).first():
        return

    password = get_password_hash("Test1234!")
    db.add_all([
        User(name="テスト営業", email="sales@test.com", hashed_password=password,
             role=Role.sales, department="営業部"),
        User(name="テスト上長", email="manager@test.com", hashed_password=password,
             role=Role.manager, department="営業部"),
    ])

    if not db.query(Customer).first():
        customers = [
            ("田中一郎", "株式会社テストA", "03-1234-5678", "tanaka@test-a.co.jp", "東京都千代田区丸の内1-1-1", "キーマン：田中様"),
            ("佐藤花子", "株式会社テストB", "03-2345-6789", "sato@test-b.co.jp", "東京都港区六本木1-1-1", "システム導入検討中"),
            ("鈴木次郎", "株式会社テストC", "03-3456-7890", "suzuki@test-c.co.jp", "東京都渋谷区渋谷1-1-1", "既存顧客"),
        ]
        for name, company, phone, email, address, notes in customers:
            db.add(Customer(name=name, company_name=company, phone=phone,
                            email=email, address=address, notes=notes))
    db.commit()
    logger.info("初期データ作成完了")


@app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    if not config.SEED_DEMO_DATA:
        return

    db = SessionLocal()
    try:
        create_initial_data(db)
    except Exception:
        logger.exception("初期データ作成エラー")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
