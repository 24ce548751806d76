"""Release of a textbook's PDF to its current holder."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from textbook_lending.models.models import Textbook
from textbook_lending.services.errors import InvalidState, NotAuthenticated, NotFound
from textbook_lending.services.storage import PdfStorage

logger = logging.getLogger(__name__)

MUST_CHECK_OUT = "You must checkout this textbook to access the PDF"


def get_pdf_access(
    db: Session, storage: PdfStorage, textbook_id: int, user_id: Optional[int]
) -> dict:
    """Return the PDF URL, its password and the due date for the holder.

    Only the user the textbook is currently checked out to gets an answer;
    earlier holders are refused like everyone else. A PDF the store cannot
    resolve comes back as ``pdf_url=None`` instead of an error.
    """
    if user_id is None:
        raise NotAuthenticated()

    textbook = db.get(Textbook, textbook_id)
    if textbook is None:
        raise NotFound("Textbook not found")

    if not textbook.is_checked_out or textbook.checked_out_by != user_id:
        raise InvalidState(MUST_CHECK_OUT)

    try:
        pdf_url = storage.get_url(textbook.pdf_storage_id)
    except OSError:
        logger.exception("PDF lookup failed for textbook_id=%s", textbook_id)
        pdf_url = None
    if pdf_url is None:
        logger.warning("PDF not available for textbook_id=%s", textbook_id)

    return {
        "pdf_url": pdf_url,
        "password": textbook.pdf_password,
        "due_date": textbook.due_date,
    }
