# auth.py - パスワードハッシュ化とJWTトークンによる認証
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict

import config
from errors import UnauthenticatedError
from models import Role

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# ヘッダーなしでもFastAPIに403を返させず、401を自前で返す
security = HTTPBearer(auto_error=False)


class AuthenticatedContext(BaseModel):
    """認証済みリクエストの利用者情報（トークンのペイロードから生成）"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: Role

    @property
    def is_manager(self) -> bool:
        return self.role == Role.manager


# パスワードハッシュ化関連
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user_id: int, email: str, role: Role, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "userId": user_id,
        "email": email,
        "role": Role(role).value,
        "exp": expire,
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> AuthenticatedContext:
    """署名・有効期限を検証してコンテキストを返す。不正な場合は UnauthenticatedError"""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise UnauthenticatedError("トークンが無効です")

    user_id = payload.get("userId")
    email = payload.get("email")
    role = payload.get("role")
    if not isinstance(user_id, int) or not email or role not in (Role.sales.value, Role.manager.value):
        raise UnauthenticatedError("トークンが無効です")
    return AuthenticatedContext(user_id=user_id, email=email, role=Role(role))


# 現在の利用者取得
async def get_current_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthenticatedError("認証が必要です")
    return decode_access_token(credentials.credentials)
