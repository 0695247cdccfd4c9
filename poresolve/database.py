"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for reference data and the resolution audit.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, String, DateTime, Boolean, Float, Integer, JSON, Text
from sqlalchemy.orm import declarative_base, sessionmaker, validates

from .models import EntityKind, ReferenceEntity
from .normalize import email_domain, normalize_email, normalize_phone, normalize_text

Base = declarative_base()


class ReferenceMixin:
    """Columns shared by every reference table."""

    key = Column(String, primary_key=True)  # customer number / contact id / SKU
    external_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=False)
    aliases = Column(JSON, nullable=False, default=list)
    email = Column(String, nullable=True, index=True)
    domain = Column(String, nullable=True, index=True)  # derived from email
    phone_digits = Column(String, nullable=True, index=True)
    embedding = Column(JSON(none_as_null=True), nullable=True)  # list of floats
    active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    @validates("email")
    def _derive_domain(self, _, value):
        email = normalize_email(value)
        if email:
            self.domain = email_domain(email)
        return email

    @validates("phone_digits")
    def _digits(self, _, value):
        return normalize_phone(value)

    def _entity(self, kind: EntityKind, **extra) -> ReferenceEntity:
        return ReferenceEntity(
            kind=kind,
            key=self.key,
            name=self.name,
            external_id=self.external_id,
            email=self.email,
            domain=normalize_text(self.domain),
            phone_digits=self.phone_digits,
            aliases=tuple(self.aliases or ()),
            embedding=tuple(self.embedding) if self.embedding else None,
            active=bool(self.active),
            **extra,
        )


class CustomerRow(ReferenceMixin, Base):
    """Customer (company) reference row."""

    __tablename__ = "customers"

    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)

    def to_entity(self) -> ReferenceEntity:
        return self._entity(
            EntityKind.CUSTOMER,
            city=normalize_text(self.city),
            state=normalize_text(self.state),
            postal_code=normalize_phone(self.postal_code),
        )


class ContactRow(ReferenceMixin, Base):
    """Contact reference row, owned by a customer."""

    __tablename__ = "contacts"

    job_title = Column(String, nullable=True)
    customer_key = Column(String, nullable=True, index=True)

    def to_entity(self) -> ReferenceEntity:
        return self._entity(
            EntityKind.CONTACT,
            job_title=normalize_text(self.job_title),
            parent_key=self.customer_key,
        )


class ItemRow(ReferenceMixin, Base):
    """Catalog item reference row."""

    __tablename__ = "items"

    description = Column(Text, nullable=True)
    color = Column(String, nullable=True)

    def to_entity(self) -> ReferenceEntity:
        return self._entity(
            EntityKind.ITEM,
            description=normalize_text(self.description),
            color=normalize_text(self.color),
        )


class ResolutionAuditRow(Base):
    """Append-only trace of one resolution decision."""

    __tablename__ = "resolution_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False)
    query = Column(JSON, nullable=False)
    top_candidates = Column(JSON, nullable=False)
    chosen_key = Column(String, nullable=True)
    confidence = Column(Float, nullable=False)
    method = Column(String, nullable=False)
    reasons = Column(JSON, nullable=False)
    tiebreak_response = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


ROW_TYPES = {
    EntityKind.CUSTOMER: CustomerRow,
    EntityKind.CONTACT: ContactRow,
    EntityKind.ITEM: ItemRow,
}


def _engine(db_path: Path):
    # Item resolution runs on worker threads
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = _engine(db_path)
    Base.metadata.create_all(engine)


def session_factory(db_path: Path):
    """
    Session factory bound to one engine, for repositories.

    Args:
        db_path: Path to SQLite database file
    """
    return sessionmaker(bind=_engine(db_path), expire_on_commit=False)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    Session = session_factory(db_path)
    return Session()
