"""
AuthorizationAuditLog model: one row per authorization status transition.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class AuthorizationAuditLog(Base):
    __tablename__ = "authorization_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    authorization_id = Column(Integer, ForeignKey("agency_client_authorizations.id"), nullable=False, index=True)

    event = Column(String(50), nullable=False)
    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=False)

    # Actor: platform user, or a confirming email for client actions, or neither for system events
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_email = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    authorization = relationship("AgencyClientAuthorization", backref="audit_logs")

    __table_args__ = (
        Index('idx_audit_authorization_created', 'authorization_id', 'created_at'),
    )

    def __repr__(self):
        return f"<AuthorizationAuditLog(authorization_id={self.authorization_id}, {self.from_status}->{self.to_status})>"
