# comments.py - 上長コメントの追加・編集・削除
import logging

from auth import AuthenticatedContext
from errors import NotFoundError
from models import Comment
from policy import Action, authorize
from repositories import UnitOfWork
from schemas import CommentCreate, CommentUpdate, parse_payload

logger = logging.getLogger(__name__)


class CommentService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def _load(self, comment_id: int) -> Comment:
        comment = self.uow.comments.get(comment_id)
        if comment is None:
            raise NotFoundError("コメントが見つかりません")
        return comment

    def create(self, ctx: AuthenticatedContext, report_id: int, payload: dict) -> Comment:
        """日報にコメントを追加（上長のみ）"""
        authorize(ctx, Action.COMMENT_CREATE)
        data = parse_payload(CommentCreate, payload)

        if self.uow.reports.get(report_id) is None:
            raise NotFoundError("日報が見つかりません")

        comment = Comment(
            daily_report_id=report_id,
            user_id=ctx.user_id,
            comment_type=data.comment_type,
            content=data.content,
        )
        with self.uow:
            self.uow.comments.add(comment)
            self.uow.commit()
        logger.info("comment created id=%s report_id=%s user_id=%s", comment.id, report_id, ctx.user_id)
        return comment

    def update(self, ctx: AuthenticatedContext, comment_id: int, payload: dict) -> Comment:
        """コメント更新（投稿者本人のみ）"""
        data = parse_payload(CommentUpdate, payload)
        comment = self._load(comment_id)
        authorize(ctx, Action.COMMENT_UPDATE, comment.user_id)

        with self.uow:
            comment.content = data.content
            self.uow.commit()
        return comment

    def delete(self, ctx: AuthenticatedContext, comment_id: int) -> None:
        """コメント削除（投稿者本人のみ）"""
        comment = self._load(comment_id)
        authorize(ctx, Action.COMMENT_DELETE, comment.user_id)

        with self.uow:
            self.uow.comments.delete(comment)
            self.uow.commit()
        logger.info("comment deleted id=%s", comment_id)
