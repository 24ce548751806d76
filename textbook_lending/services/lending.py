"""Checkout and return of textbooks.

A textbook is either available or checked out by exactly one user, and a
user holds at most one textbook at a time. Every mutation below reads its
preconditions and then applies the transition as a conditional UPDATE
(compare-and-swap on the checkout fields), committing once. When a
concurrent transaction wins the race the UPDATE touches no rows and the call
fails without writing anything.

Callers pass the user id resolved at the API boundary; ``None`` means the
request is not authenticated. Times are epoch milliseconds.
"""

from __future__ import annotations

import csv
import logging
import time
from io import StringIO
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from textbook_lending.models.models import CheckoutRecord, Textbook, User
from textbook_lending.services.errors import InvalidState, NotAuthenticated, NotFound

logger = logging.getLogger(__name__)

LOAN_PERIOD_MS = 7 * 24 * 60 * 60 * 1000

ONE_AT_A_TIME = "You can only checkout one textbook at a time"
ALREADY_CHECKED_OUT = "This textbook is already checked out"
NOT_HELD = "You don't have this textbook checked out"

_CLEARED = {
    Textbook.is_checked_out: False,
    Textbook.checked_out_by: None,
    Textbook.checked_out_at: None,
    Textbook.due_date: None,
}


def now_ms() -> int:
    return int(time.time() * 1000)


def _require_user(user_id: Optional[int]) -> int:
    if user_id is None:
        raise NotAuthenticated()
    return user_id


def _get_textbook(db: Session, textbook_id: int) -> Textbook:
    textbook = db.get(Textbook, textbook_id)
    if textbook is None:
        raise NotFound("Textbook not found")
    return textbook


def _open_record(db: Session, textbook_id: int, user_id: int) -> Optional[CheckoutRecord]:
    return (
        db.query(CheckoutRecord)
        .filter(
            CheckoutRecord.textbook_id == textbook_id,
            CheckoutRecord.user_id == user_id,
            CheckoutRecord.returned_at.is_(None),
        )
        .order_by(CheckoutRecord.checked_out_at.desc())
        .first()
    )


def get_current_checkout(db: Session, user_id: Optional[int]) -> Optional[Textbook]:
    if user_id is None:
        return None
    return db.query(Textbook).filter(Textbook.checked_out_by == user_id).first()


def list_textbooks(db: Session, user_id: Optional[int]) -> List[dict]:
    """All textbooks with the holder's email and whether the caller holds them."""
    user_id = _require_user(user_id)

    result = []
    for textbook in db.query(Textbook).order_by(Textbook.id).all():
        checked_out_by_user = None
        if textbook.checked_out_by is not None:
            holder = db.get(User, textbook.checked_out_by)
            checked_out_by_user = holder.email if holder else "Unknown user"
        result.append(
            {
                "id": textbook.id,
                "title": textbook.title,
                "author": textbook.author,
                "isbn": textbook.isbn,
                "description": textbook.description,
                "is_checked_out": textbook.is_checked_out,
                "checked_out_by": textbook.checked_out_by,
                "checked_out_at": textbook.checked_out_at,
                "due_date": textbook.due_date,
                "checked_out_by_user": checked_out_by_user,
                "is_checked_out_by_current_user": textbook.checked_out_by == user_id,
            }
        )
    return result


def checkout(
    db: Session, textbook_id: int, user_id: Optional[int], now: Optional[int] = None
) -> dict:
    """Check a textbook out to the caller for LOAN_PERIOD_MS.

    Raises:
        NotAuthenticated: no caller.
        InvalidState: the caller already holds a textbook, or this one is taken.
        NotFound: no such textbook.
    """
    user_id = _require_user(user_id)
    now = now_ms() if now is None else now

    if get_current_checkout(db, user_id) is not None:
        raise InvalidState(ONE_AT_A_TIME)

    textbook = _get_textbook(db, textbook_id)
    if textbook.is_checked_out:
        raise InvalidState(ALREADY_CHECKED_OUT)

    due_date = now + LOAN_PERIOD_MS
    try:
        updated = (
            db.query(Textbook)
            .filter(Textbook.id == textbook_id, Textbook.is_checked_out.is_(False))
            .update(
                {
                    Textbook.is_checked_out: True,
                    Textbook.checked_out_by: user_id,
                    Textbook.checked_out_at: now,
                    Textbook.due_date: due_date,
                },
                synchronize_session=False,
            )
        )
    except IntegrityError:
        # Another transaction gave this user a different textbook first.
        db.rollback()
        raise InvalidState(ONE_AT_A_TIME)

    if updated != 1:
        db.rollback()
        raise InvalidState(ALREADY_CHECKED_OUT)

    db.add(
        CheckoutRecord(
            textbook_id=textbook_id,
            user_id=user_id,
            checked_out_at=now,
            auto_returned=False,
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Checked out textbook_id=%s user_id=%s due=%s", textbook_id, user_id, due_date)
    return {"success": True, "due_date": due_date}


def _release(
    db: Session, textbook_id: int, holder_id: int, now: int, auto_returned: bool
) -> bool:
    """Clear a textbook's checkout fields and close the holder's open record.

    Returns False when the textbook is no longer held by ``holder_id``. Does
    not commit.
    """
    updated = (
        db.query(Textbook)
        .filter(
            Textbook.id == textbook_id,
            Textbook.is_checked_out.is_(True),
            Textbook.checked_out_by == holder_id,
        )
        .update(_CLEARED, synchronize_session=False)
    )
    if updated != 1:
        return False

    record = _open_record(db, textbook_id, holder_id)
    if record is None:
        logger.warning(
            "No open checkout record for textbook_id=%s user_id=%s; returned anyway",
            textbook_id,
            holder_id,
        )
    else:
        record.returned_at = now
        record.auto_returned = auto_returned
    return True


def return_book(
    db: Session, textbook_id: int, user_id: Optional[int], now: Optional[int] = None
) -> dict:
    """Return a textbook the caller currently holds."""
    user_id = _require_user(user_id)
    now = now_ms() if now is None else now

    textbook = _get_textbook(db, textbook_id)
    if not textbook.is_checked_out or textbook.checked_out_by != user_id:
        raise InvalidState(NOT_HELD)

    try:
        released = _release(db, textbook_id, user_id, now, auto_returned=False)
        if not released:
            db.rollback()
            raise InvalidState(NOT_HELD)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Returned textbook_id=%s user_id=%s", textbook_id, user_id)
    return {"success": True}


def auto_return_overdue_books(db: Session, now: Optional[int] = None) -> dict:
    """Return every textbook whose due date has passed.

    Each textbook is released in its own transaction. A failure on one is
    logged and rolled back without stopping the others, and textbooks already
    returned by someone else are skipped, so the sweep can be re-run or run
    concurrently.
    """
    now = now_ms() if now is None else now

    overdue = (
        db.query(Textbook.id, Textbook.checked_out_by)
        .filter(Textbook.is_checked_out.is_(True), Textbook.due_date < now)
        .order_by(Textbook.due_date)
        .all()
    )
    db.rollback()

    returned_count = 0
    for textbook_id, holder_id in overdue:
        try:
            if _release(db, textbook_id, holder_id, now, auto_returned=True):
                db.commit()
                returned_count += 1
                logger.info("Auto-returned textbook_id=%s user_id=%s", textbook_id, holder_id)
            else:
                db.rollback()
        except Exception:
            db.rollback()
            logger.exception("Auto-return failed for textbook_id=%s", textbook_id)

    if overdue:
        logger.info("Overdue sweep: %d of %d returned", returned_count, len(overdue))
    return {"returned_count": returned_count}


def get_history(db: Session, user_id: Optional[int]) -> List[CheckoutRecord]:
    user_id = _require_user(user_id)
    return (
        db.query(CheckoutRecord)
        .filter(CheckoutRecord.user_id == user_id)
        .order_by(CheckoutRecord.checked_out_at.desc(), CheckoutRecord.id.desc())
        .all()
    )


def export_history_csv(db: Session, user_id: Optional[int]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Textbook Title", "Checked Out At", "Returned At", "Auto Returned"])
    for record in get_history(db, user_id):
        writer.writerow(
            [
                record.textbook.title,
                record.checked_out_at,
                "" if record.returned_at is None else record.returned_at,
                record.auto_returned,
            ]
        )

    output.seek(0)
    return output.getvalue()
