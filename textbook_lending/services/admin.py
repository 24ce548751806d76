"""Admin role checks and the operations gated behind them."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from textbook_lending.models.models import Textbook, User, UserProfile
from textbook_lending.services.errors import InvalidState, NotAdmin, NotAuthenticated, NotFound
from textbook_lending.services.storage import PdfStorage

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def _profile(db: Session, user_id: int) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()


def is_admin(db: Session, user_id: Optional[int]) -> bool:
    if user_id is None:
        return False
    profile = _profile(db, user_id)
    return profile is not None and profile.is_admin is True


def require_admin(db: Session, user_id: Optional[int]) -> int:
    if user_id is None:
        raise NotAuthenticated()
    if not is_admin(db, user_id):
        logger.warning("Admin access blocked: user_id=%s", user_id)
        raise NotAdmin()
    return user_id


def make_user_admin(db: Session, caller_id: Optional[int], email: str) -> dict:
    """Grant admin rights to the user with ``email``.

    While no admin exists any signed-in user may do this, which is how the
    first admin is created. After that only admins can promote.
    """
    if caller_id is None:
        raise NotAuthenticated()

    admins_exist = (
        db.query(UserProfile).filter(UserProfile.is_admin.is_(True)).first() is not None
    )
    if admins_exist:
        require_admin(db, caller_id)

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise NotFound("User not found")

    profile = _profile(db, user.id)
    if profile:
        profile.is_admin = True
    else:
        db.add(UserProfile(user_id=user.id, is_admin=True))
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        "User %s promoted to admin by user_id=%s%s",
        user.id,
        caller_id,
        "" if admins_exist else " (first admin)",
    )
    return {"success": True}


def upload_pdf(
    db: Session,
    storage: PdfStorage,
    caller_id: Optional[int],
    data: bytes,
    content_type: Optional[str],
) -> str:
    """Store a PDF for a textbook that is about to be added. Returns its storage id."""
    require_admin(db, caller_id)

    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type != PDF_CONTENT_TYPE:
        raise InvalidState("Please select a PDF file")
    if not data:
        raise InvalidState("Uploaded file is empty")

    return storage.save(data)


def add_textbook(
    db: Session,
    storage: PdfStorage,
    caller_id: Optional[int],
    *,
    title: str,
    author: str,
    pdf_storage_id: str,
    pdf_password: str,
    isbn: Optional[str] = None,
    description: Optional[str] = None,
) -> Textbook:
    require_admin(db, caller_id)

    if not title.strip() or not author.strip() or not pdf_password:
        raise InvalidState("Please fill in all required fields")
    if not storage.exists(pdf_storage_id):
        raise InvalidState("Uploaded PDF not found")

    textbook = Textbook(
        title=title.strip(),
        author=author.strip(),
        isbn=isbn or None,
        description=description or None,
        pdf_storage_id=pdf_storage_id,
        pdf_password=pdf_password,
        is_checked_out=False,
    )
    db.add(textbook)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(textbook)

    logger.info("Textbook %s added by user_id=%s", textbook.id, caller_id)
    return textbook
