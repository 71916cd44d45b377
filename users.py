# users.py - ユーザー管理（上長のみ）とログイン
import logging

from sqlalchemy.exc import IntegrityError

from auth import AuthenticatedContext, create_access_token, get_password_hash, verify_password
from errors import DuplicateError, NotFoundError, UnauthenticatedError, ValidationError
from models import User
from policy import Action, authorize
from repositories import UnitOfWork
from schemas import LoginRequest, UserCreate, UserListQuery, UserUpdate, parse_payload

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "このメールアドレスは既に登録されています"
LOGIN_FAILED_MESSAGE = "メールアドレスまたはパスワードが正しくありません"


class UserService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def _load(self, user_id: int) -> User:
        user = self.uow.users.get(user_id)
        if user is None:
            raise NotFoundError("ユーザーが見つかりません")
        return user

    def search(self, ctx: AuthenticatedContext, params: dict):
        """ユーザー一覧取得（上長のみ）"""
        authorize(ctx, Action.USER_MANAGE)
        query = parse_payload(UserListQuery, params)
        users, total = self.uow.users.search(query.role, query.department, query.page, query.per_page)
        return users, total, query

    def get(self, ctx: AuthenticatedContext, user_id: int) -> User:
        authorize(ctx, Action.USER_MANAGE)
        return self._load(user_id)

    def create(self, ctx: AuthenticatedContext, payload: dict) -> User:
        """新規ユーザー作成（上長のみ）"""
        authorize(ctx, Action.USER_MANAGE)
        data = parse_payload(UserCreate, payload)

        # 重複チェック
        if self.uow.users.get_by_email(data.email) is not None:
            raise DuplicateError(DUPLICATE_EMAIL_MESSAGE)

        user = User(
            name=data.name,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=data.role,
            department=data.department or None,
        )
        with self.uow:
            try:
                self.uow.users.add(user)
            except IntegrityError:
                self.uow.rollback()
                raise DuplicateError(DUPLICATE_EMAIL_MESSAGE)
            self.uow.commit()
        logger.info("user created id=%s role=%s by=%s", user.id, user.role.value, ctx.user_id)
        return user

    def update(self, ctx: AuthenticatedContext, user_id: int, payload: dict) -> User:
        """ユーザー情報更新（上長のみ）。指定された項目だけを更新する"""
        authorize(ctx, Action.USER_MANAGE)
        data = parse_payload(UserUpdate, payload)
        user = self._load(user_id)

        changes = data.model_dump(exclude_unset=True)
        if "email" in changes and changes["email"] != user.email:
            if self.uow.users.get_by_email(changes["email"]) is not None:
                raise DuplicateError(DUPLICATE_EMAIL_MESSAGE)

        with self.uow:
            for field, value in changes.items():
                if field == "password":
                    user.hashed_password = get_password_hash(value)
                elif field == "department":
                    user.department = value or None
                else:
                    setattr(user, field, value)
            try:
                self.uow.session.flush()
            except IntegrityError:
                self.uow.rollback()
                raise DuplicateError(DUPLICATE_EMAIL_MESSAGE)
            self.uow.commit()
        return user

    def delete(self, ctx: AuthenticatedContext, user_id: int) -> None:
        """ユーザー削除（上長のみ）。日報を作成済みのユーザーは削除できない"""
        authorize(ctx, Action.USER_MANAGE)
        user = self._load(user_id)

        if self.uow.users.has_reports(user_id):
            raise ValidationError("このユーザーは日報を作成しているため削除できません")

        with self.uow:
            self.uow.users.delete(user)
            self.uow.commit()
        logger.info("user deleted id=%s by=%s", user_id, ctx.user_id)


def login(uow: UnitOfWork, payload: dict):
    """メールアドレスとパスワードで認証し、(トークン, ユーザー) を返す"""
    data = parse_payload(LoginRequest, payload)

    user = uow.users.get_by_email(data.email)
    # ユーザー不在とパスワード不一致は同じメッセージにする
    if user is None or not verify_password(data.password, user.hashed_password):
        logger.info("login failed email=%s", data.email)
        raise UnauthenticatedError(LOGIN_FAILED_MESSAGE)

    token = create_access_token(user.id, user.email, user.role)
    return token, user


def current_user(uow: UnitOfWork, ctx: AuthenticatedContext) -> User:
    """トークンの利用者を最新の状態で取得する（削除済みなら404）"""
    user = uow.users.get(ctx.user_id)
    if user is None:
        raise NotFoundError("ユーザーが見つかりません")
    return user
