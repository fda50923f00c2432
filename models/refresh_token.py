"""
RefreshToken model: one row per issued refresh token, so tokens can be
rotated (single use) and revoked on logout.
Fields:
- id (String(36))
- token (the signed token string, unique)
- user_id (String(36)) - FK to users.id
- created_at, expires_at (naive UTC; expires_at is authoritative for rotation)
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, utc_now


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(Text, nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    user = relationship("User", back_populates="refresh_tokens")

    def is_expired(self, now=None) -> bool:
        return self.expires_at < (now or utc_now())

    def __repr__(self):
        return f"<RefreshToken {self.id} user={self.user_id} expires_at={self.expires_at}>"
