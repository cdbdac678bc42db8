"""
Company and CompanyContact models.

Minimal company records referenced by agency-client authorizations.
Registration and onboarding of companies happen elsewhere.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base

AGENCY_ACCOUNT_TYPES = ("recruiting_agency", "consulting_firm")


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    account_type = Column(String(50), nullable=False, default="direct")  # direct | recruiting_agency | consulting_firm
    email = Column(String(255), nullable=True)

    # Tax / registration identifiers
    gst_number = Column(String(20), nullable=True, index=True)
    pan_number = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contacts = relationship("CompanyContact", back_populates="company", cascade="all, delete-orphan")

    @property
    def is_agency(self) -> bool:
        return self.account_type in AGENCY_ACCOUNT_TYPES

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}', account_type='{self.account_type}')>"


class CompanyContact(Base):
    """A registered contact person allowed to act for a company by email."""
    __tablename__ = "company_contacts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    company = relationship("Company", back_populates="contacts")

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_company_contact_email"),
    )
