import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SWEEP_ENABLED"] = "0"
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="textbook-pdfs-"))

import pytest
from fastapi.testclient import TestClient

from textbook_lending.config.db import Base, SessionLocal, engine
from textbook_lending.main import app
from textbook_lending.models.models import Textbook, User, UserProfile
from textbook_lending.services.storage import PdfStorage, get_storage

PDF_BYTES = b"%PDF-1.4\n% test textbook\n"


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage(tmp_path):
    return PdfStorage(tmp_path / "pdfs")


@pytest.fixture
def client(db, storage):
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, email="alice@example.com", password="secret1", is_admin=False):
    user = User(email=email, password=password)
    db.add(user)
    db.commit()
    db.refresh(user)
    if is_admin:
        db.add(UserProfile(user_id=user.id, is_admin=True))
        db.commit()
    return user


def make_textbook(db, storage=None, title="Calculus", author="Stewart", password="pdf-pass"):
    storage_id = storage.save(PDF_BYTES) if storage is not None else "0" * 32
    textbook = Textbook(
        title=title,
        author=author,
        pdf_storage_id=storage_id,
        pdf_password=password,
        is_checked_out=False,
    )
    db.add(textbook)
    db.commit()
    db.refresh(textbook)
    return textbook


def assert_consistent(db):
    """Every textbook's checkout fields agree, and nobody holds two textbooks."""
    db.expire_all()
    holders = []
    for textbook in db.query(Textbook).all():
        fields = (textbook.checked_out_by, textbook.checked_out_at, textbook.due_date)
        if textbook.is_checked_out:
            assert all(f is not None for f in fields), textbook.id
            holders.append(textbook.checked_out_by)
        else:
            assert all(f is None for f in fields), textbook.id
    assert len(holders) == len(set(holders))
