"""
Job model with agency attribution fields.

The job schema itself is owned by the job-posting surface; this model carries
only what the authorization core reads and writes.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    title = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    location = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | closed

    # Attribution
    hiring_company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    posted_by_agency_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    is_agency_posted = Column(Boolean, nullable=False, default=False)
    authorization_id = Column(Integer, ForeignKey("agency_client_authorizations.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    authorization = relationship("AgencyClientAuthorization", backref="jobs")

    __table_args__ = (
        CheckConstraint(
            "(posted_by_agency_id IS NULL AND authorization_id IS NULL) OR "
            "(posted_by_agency_id IS NOT NULL AND authorization_id IS NOT NULL "
            "AND hiring_company_id IS NOT NULL AND hiring_company_id <> posted_by_agency_id)",
            name="ck_jobs_agency_attribution",
        ),
        Index('idx_jobs_agency_hiring', 'posted_by_agency_id', 'hiring_company_id'),
    )

    def __repr__(self):
        return f"<Job(id={self.id}, title='{self.title}', agency={self.posted_by_agency_id})>"
