# policy.py - 役割・所有者に基づく認可判定
"""
認可ポリシー。

判定は利用者コンテキストと、既に読み込まれたリソースの所有者IDだけで行う。
データベースにはアクセスしない。
"""
import enum
from typing import Optional

from auth import AuthenticatedContext
from errors import ForbiddenError
from models import Role


class Action(str, enum.Enum):
    REPORT_CREATE = "report:create"
    REPORT_VIEW = "report:view"
    REPORT_LIST = "report:list"
    REPORT_UPDATE = "report:update"
    REPORT_DELETE = "report:delete"
    COMMENT_CREATE = "comment:create"
    COMMENT_UPDATE = "comment:update"
    COMMENT_DELETE = "comment:delete"
    CUSTOMER_MANAGE = "customer:manage"
    USER_MANAGE = "user:manage"


_DENIED_MESSAGES = {
    Action.REPORT_VIEW: "この日報を閲覧する権限がありません",
    Action.REPORT_LIST: "他のユーザーの日報は閲覧できません",
    Action.REPORT_UPDATE: "この日報を編集する権限がありません",
    Action.REPORT_DELETE: "この日報を削除する権限がありません",
    Action.COMMENT_CREATE: "コメントは上長のみ追加できます",
    Action.COMMENT_UPDATE: "他人のコメントは編集できません",
    Action.COMMENT_DELETE: "他人のコメントは削除できません",
    Action.USER_MANAGE: "この操作を実行する権限がありません",
}

# 所有者本人のみ許可される操作
_OWNER_ONLY = {
    Action.REPORT_UPDATE,
    Action.REPORT_DELETE,
    Action.COMMENT_UPDATE,
    Action.COMMENT_DELETE,
}


def is_allowed(ctx: AuthenticatedContext, action: Action, owner_id: Optional[int] = None) -> bool:
    """
    操作の可否を返す。

    owner_id はリソースの所有者（日報作成者・コメント投稿者）。
    REPORT_LIST では一覧の user_id 絞り込み値を渡す（未指定なら None）。
    """
    if action in _OWNER_ONLY:
        return owner_id is not None and owner_id == ctx.user_id

    if action == Action.REPORT_VIEW:
        return ctx.role == Role.manager or owner_id == ctx.user_id

    if action == Action.REPORT_LIST:
        # 営業が他人のuser_idを指定した場合は無視せず拒否する
        return ctx.role == Role.manager or owner_id is None or owner_id == ctx.user_id

    if action in (Action.COMMENT_CREATE, Action.USER_MANAGE):
        return ctx.role == Role.manager

    if action in (Action.REPORT_CREATE, Action.CUSTOMER_MANAGE):
        return True

    return False


def authorize(ctx: AuthenticatedContext, action: Action, owner_id: Optional[int] = None) -> None:
    if not is_allowed(ctx, action, owner_id):
        raise ForbiddenError(_DENIED_MESSAGES.get(action))
