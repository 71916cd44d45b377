# errors.py - APIエラー定義とレスポンス形式
from typing import Any, Dict, List, Optional


class ErrorCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_ERROR = "DUPLICATE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """
    検出した箇所で種別を確定させ、境界（例外ハンドラ）まで変更せずに伝播させるエラー。
    境界で status_code と code を使ってレスポンスを組み立てる。
    """
    status_code = 500
    code = ErrorCode.INTERNAL_ERROR
    default_message = "サーバーエラーが発生しました"

    def __init__(self, message: Optional[str] = None, details: Optional[List[Dict[str, str]]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class UnauthenticatedError(ApiError):
    status_code = 401
    code = ErrorCode.UNAUTHORIZED
    default_message = "認証が必要です"


class ForbiddenError(ApiError):
    status_code = 403
    code = ErrorCode.FORBIDDEN
    default_message = "アクセス権限がありません"


class NotFoundError(ApiError):
    status_code = 404
    code = ErrorCode.NOT_FOUND
    default_message = "リソースが見つかりません"


class ValidationError(ApiError):
    status_code = 422
    code = ErrorCode.VALIDATION_ERROR
    default_message = "入力値が不正です"


class DuplicateReportDateError(ValidationError):
    """同じ利用者・同じ日付の日報が既にある。レスポンス上は通常の入力エラーとして返す"""
    default_message = "この日付の日報は既に登録されています"


class DuplicateError(ApiError):
    """一意制約違反（メールアドレス重複）"""
    status_code = 422
    code = ErrorCode.DUPLICATE_ERROR
    default_message = "既に登録されています"


class InternalError(ApiError):
    pass


def field_error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def success_response(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}
