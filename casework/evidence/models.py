from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
from casework.database import Base
from casework.shared.models import AuditMixin


class Source(Base, AuditMixin):
    __tablename__ = "sources"
    __table_args__ = (UniqueConstraint("case_id", "url", name="uq_source_case_url"),)

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    url = Column(String, nullable=False)
    title = Column(String, nullable=True)
    publication = Column(String, nullable=True)
    source_type = Column(String, default="news", nullable=False)
    author = Column(String, nullable=True)
    published_date = Column(String, nullable=True)
    archived_url = Column(String, nullable=True)


class Quote(Base, AuditMixin):
    __tablename__ = "quotes"

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    source_id = Column(ForeignKey("sources.id"), nullable=True)
    quote_text = Column(Text, nullable=False)
    category = Column(String, nullable=True)
    page_number = Column(Integer, nullable=True)
    verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)


class QuoteFieldLink(Base, AuditMixin):
    """A quote supporting one named field of a case."""
    __tablename__ = "quote_field_links"
    __table_args__ = (
        UniqueConstraint("case_id", "quote_id", "field_name", name="uq_quote_field_link"),
    )

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    quote_id = Column(ForeignKey("quotes.id"), nullable=False, index=True)
    field_name = Column(String, nullable=False)
