from fastapi import APIRouter, HTTPException, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session
from textbook_lending.config.db import *
from textbook_lending.models.models import User, CheckoutRecord
from textbook_lending.schemas.schemas import (
    UserCreate,
    PromoteRequest,
    TextbookCreate,
    TextbookOut,
    TextbookListItem,
    CheckoutOut,
    ReturnOut,
    PdfAccessOut,
    UploadOut,
    CheckoutRecordOut,
)
from textbook_lending.services import access, admin, lending
from textbook_lending.services.storage import PdfStorage, get_storage
from typing import List, Optional
import secrets

router = APIRouter()
security = HTTPBasic()


def get_current_user(
    credentials: HTTPBasicCredentials = Depends(security), db: Session = Depends(get_db)
):
    """
    Retrieves the current user from the database based on provided credentials.

    Parameters:
        credentials (HTTPBasicCredentials): The HTTPBasicCredentials containing the email and password.
        db (Session): The database session.

    Returns:
        User: The user object if authentication is successful.

    Raises:
        HTTPException: If the user credentials are invalid or the user does not exist.
    """
    user = db.query(User).filter(User.email == credentials.username).first()
    if not user or not secrets.compare_digest(
        user.password.encode("utf-8"), credentials.password.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user


def _history_rows(records: List[CheckoutRecord]) -> List[dict]:
    return [
        {
            "id": record.id,
            "textbook_id": record.textbook_id,
            "textbook_title": record.textbook.title,
            "user_id": record.user_id,
            "checked_out_at": record.checked_out_at,
            "returned_at": record.returned_at,
            "auto_returned": record.auto_returned,
        }
        for record in records
    ]


@router.post("/users", status_code=status.HTTP_201_CREATED)
def sign_up(user: UserCreate, db: Session = Depends(get_db)):
    """
    Registers a new user account.

    Parameters:
        user (UserCreate): The email and password for the new account.
        db (Session): The database session.

    Returns:
        dict: A success message with the ID of the newly created user.

    Raises:
        HTTPException: If the email format is invalid, if the password is too short,
                        or if the user already exists.
    """
    if "@" not in user.email:
        raise HTTPException(status_code=400, detail="Invalid email format")

    if len(user.password) < 6:
        raise HTTPException(
            status_code=400, detail="Password must be at least 6 characters"
        )

    existing_user = db.query(User).filter(User.email == user.email).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="User already exists")

    new_user = User(email=user.email, password=user.password)
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    return {"message": "User created successfully", "user_id": new_user.id}


@router.get("/textbooks", response_model=List[TextbookListItem])
def get_textbooks(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """
    Retrieves every textbook with its checkout status.

    Each entry carries the holder's email and whether the current user is the holder.
    The PDF reference and password are never included.
    """
    return lending.list_textbooks(db, current_user.id)


@router.get("/textbooks/current", response_model=Optional[TextbookOut])
def get_current_checkout(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Returns the textbook the current user has checked out, or null."""
    return lending.get_current_checkout(db, current_user.id)


@router.post("/textbooks/{textbook_id}/checkout", response_model=CheckoutOut)
def checkout_textbook(
    textbook_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Checks a textbook out to the current user for seven days.

    Parameters:
        textbook_id (int): The ID of the textbook.
        current_user (User): The currently authenticated user.
        db (Session): The database session.

    Returns:
        CheckoutOut: Success flag and the due date in epoch milliseconds.

    Raises:
        NotFound: If the textbook does not exist.
        InvalidState: If the user already has a textbook or this one is checked out.
    """
    return lending.checkout(db, textbook_id, current_user.id)


@router.post("/textbooks/{textbook_id}/return", response_model=ReturnOut)
def return_textbook(
    textbook_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Returns a textbook held by the current user.

    Raises:
        NotFound: If the textbook does not exist.
        InvalidState: If the textbook is not checked out by the current user.
    """
    return lending.return_book(db, textbook_id, current_user.id)


@router.get("/textbooks/{textbook_id}/pdf", response_model=PdfAccessOut)
def get_pdf_access(
    textbook_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: PdfStorage = Depends(get_storage),
):
    """
    Returns the PDF URL, password and due date for the holder of a textbook.

    `pdf_url` is null when the stored file cannot be found.
    """
    return access.get_pdf_access(db, storage, textbook_id, current_user.id)


@router.get("/files/{storage_id}")
def download_pdf(storage_id: str, storage: PdfStorage = Depends(get_storage)):
    if not storage.exists(storage_id):
        raise HTTPException(status_code=404, detail="PDF not available")
    return FileResponse(storage.path_for(storage_id), media_type="application/pdf")


@router.get("/history", response_model=List[CheckoutRecordOut])
def view_personal_history(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """
    Retrieves the checkout history of the currently authenticated user, newest first.
    """
    return _history_rows(lending.get_history(db, current_user.id))


@router.get("/download-history")
def download_history(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """
    Downloads the checkout history of the currently authenticated user as a CSV file.

    Returns:
        dict: A dictionary containing the CSV data of the checkout history.
    """
    return {"csv": lending.export_history_csv(db, current_user.id)}


@router.get("/admin/me")
def is_current_user_admin(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return {"is_admin": admin.is_admin(db, current_user.id)}


@router.post("/admin/users")
def make_user_admin(
    request: PromoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Grants admin rights to the user with the given email.

    Any signed-in user may do this while no admin exists; afterwards admin rights are required.

    Raises:
        NotAdmin: If admins exist and the current user is not one of them.
        NotFound: If no user has the given email.
    """
    return admin.make_user_admin(db, current_user.id, request.email)


@router.post(
    "/admin/uploads", status_code=status.HTTP_201_CREATED, response_model=UploadOut
)
async def upload_pdf(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: PdfStorage = Depends(get_storage),
):
    """
    Stores the raw request body as a textbook PDF.

    The body must be sent with `Content-Type: application/pdf`. The returned storage id is
    passed to `POST /admin/textbooks`.
    """
    data = await request.body()
    storage_id = await run_in_threadpool(
        admin.upload_pdf,
        db,
        storage,
        current_user.id,
        data,
        request.headers.get("content-type"),
    )
    return {"storage_id": storage_id}


@router.post(
    "/admin/textbooks", status_code=status.HTTP_201_CREATED, response_model=TextbookOut
)
def add_textbook(
    textbook: TextbookCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: PdfStorage = Depends(get_storage),
):
    """
    Adds a new, available textbook. Admin only.

    Raises:
        NotAdmin: If the current user is not an admin.
        InvalidState: If a required field is blank or the PDF was never uploaded.
    """
    return admin.add_textbook(
        db,
        storage,
        current_user.id,
        title=textbook.title,
        author=textbook.author,
        isbn=textbook.isbn,
        description=textbook.description,
        pdf_storage_id=textbook.pdf_storage_id,
        pdf_password=textbook.pdf_password,
    )


@router.get("/admin/users/{user_id}/history", response_model=List[CheckoutRecordOut])
def view_user_history(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Retrieves the checkout history of a specific user if the current user has admin privileges.

    Raises:
        NotAdmin: If the current user is not an admin.
        HTTPException: If the user does not exist.
    """
    admin.require_admin(db, current_user.id)

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return _history_rows(lending.get_history(db, user_id))
