from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from textbook_lending.config.db import *


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)


class UserProfile(Base):
    __tablename__ = "user_profiles"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False)
    is_admin = Column(Boolean, nullable=True)

    user = relationship("User")


class Textbook(Base):
    __tablename__ = "textbooks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=False)
    isbn = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    pdf_storage_id = Column(String, nullable=False)
    pdf_password = Column(String, nullable=False)

    # Times are epoch milliseconds.
    is_checked_out = Column(Boolean, nullable=False, default=False)
    checked_out_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    checked_out_at = Column(BigInteger, nullable=True)
    due_date = Column(BigInteger, nullable=True)

    holder = relationship("User")

    __table_args__ = (
        Index("textbooks_by_checked_out", "is_checked_out"),
        # One active loan per user; NULLs do not collide.
        Index("textbooks_by_user", "checked_out_by", unique=True),
        CheckConstraint(
            "(is_checked_out AND checked_out_by IS NOT NULL"
            " AND checked_out_at IS NOT NULL AND due_date IS NOT NULL)"
            " OR (NOT is_checked_out AND checked_out_by IS NULL"
            " AND checked_out_at IS NULL AND due_date IS NULL)",
            name="textbooks_checkout_fields",
        ),
    )


class CheckoutRecord(Base):
    __tablename__ = "checkout_history"

    id = Column(Integer, primary_key=True, index=True)
    textbook_id = Column(Integer, ForeignKey("textbooks.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    checked_out_at = Column(BigInteger, nullable=False)
    returned_at = Column(BigInteger, nullable=True)  # None while the loan is open
    auto_returned = Column(Boolean, nullable=False, default=False)

    textbook = relationship("Textbook")
    user = relationship("User")

    __table_args__ = (
        Index("checkout_history_by_textbook", "textbook_id"),
        Index("checkout_history_by_user", "user_id"),
    )
