import os
import pytest

from book import Book
from library import Library
from member import Member, MembershipType


@pytest.fixture
def db_file(tmp_path, request, monkeypatch):
    # A unique database file per test, also visible to modules that read the environment
    path = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setenv("LIBRARY_DB_FILE", path)
    yield path
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(path + suffix):
            os.remove(path + suffix)


@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file, seed=False)
    yield lib
    lib.close()


@pytest.fixture
def seeded_lib(db_file):
    lib = Library(db_file=db_file, seed=True)
    yield lib
    lib.close()


@pytest.fixture
def member(lib):
    return lib.add_member(Member(None, "Ian", "Carter", email="ian@example.com", phone="01234567899",
                                 membership_type=MembershipType.FACULTY))


@pytest.fixture
def make_book(lib):
    def _make(copies: int = 1, title: str = "Calculus Made Easy", book_id=None) -> Book:
        return lib.add_book(Book(book_id, title, "Silvanus P.", "Mathematics", total_copies=copies))
    return _make
