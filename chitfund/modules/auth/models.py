from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from chitfund.core.database import Base


class IdentityAccount(Base):
    """Email/password identity known to the local identity provider"""
    __tablename__ = "identities"

    uid = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # Signed-in state, so sign-out is observable across requests
    signed_in = Column(Boolean, default=False, nullable=False)
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<IdentityAccount(uid={self.uid}, email={self.email})>"
