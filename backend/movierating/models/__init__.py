"""Database models package."""
from movierating.models.base import Base
from movierating.models.token import JwtToken, TokenType
from movierating.models.user import User

__all__ = [
    "Base",
    "JwtToken",
    "TokenType",
    "User",
]
