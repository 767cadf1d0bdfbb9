import pytest

from book import Book
from database import get_db_connection, load_sample_data
from errors import ValidationFailureError
from library import Library
from member import Member, MembershipType
from transaction import TransactionStatus


def test_add_list_and_find(lib):
    assert lib.list_books() == []

    book = lib.add_book(Book(None, "Ulysses", "James Joyce", "Fiction", total_copies=2, isbn="9780199535675"))

    assert book.book_id == 1
    found = lib.find_book(book.book_id)
    assert found.title == "Ulysses"
    assert found.total_copies == 2
    assert found.available_copies == 2
    assert [b.title for b in lib.list_books()] == ["Ulysses"]


def test_add_duplicate_isbn(lib):
    lib.add_book(Book(None, "Test Book", "Test Author", isbn="1234567890"))

    with pytest.raises(ValidationFailureError, match="ISBN 1234567890 already exists"):
        lib.add_book(Book(None, "Test Book", "Test Author", isbn="1234567890"))

    assert len(lib.list_books()) == 1


@pytest.mark.parametrize("title, author, copies", [
    ("   ", "Author", 1),
    ("12345", "Author", 1),
    ("Title", "1984", 1),
    ("Title", "Author", -1),
])
def test_add_book_validation(lib, title, author, copies):
    with pytest.raises(ValidationFailureError):
        lib.add_book(Book(None, title, author, total_copies=copies))
    assert lib.list_books() == []


def test_persistence(db_file):
    Library(db_file).add_book(Book(None, "Sapiens", "Yuval Noah Harari", isbn="9780099590088"))

    # A new instance reads the same SQLite file
    assert Library(db_file).find_book(1).title == "Sapiens"


def test_search_books(lib):
    lib.add_book(Book(None, "Python Basics", "Guido Rossum", "Programming"))
    lib.add_book(Book(None, "Organic Chemistry", "Morrison & Boyd", "Science"))

    assert [b.title for b in lib.search_books("python")] == ["Python Basics"]
    assert [b.title for b in lib.search_books("Science")] == ["Organic Chemistry"]
    assert lib.search_books("nothing like this") == []


def test_add_member_normalizes_contact(lib):
    member = lib.add_member(Member(None, "Alice", "Johnson", email="Alice@Example.com", phone="(012) 345-6789"))

    stored = lib.find_member(member.member_id)
    assert stored.email == "alice@example.com"
    assert stored.phone == "0123456789"
    assert stored.membership_type is MembershipType.STUDENT
    assert stored.membership_date is not None
    assert stored.full_name == "Alice Johnson"


def test_add_member_rejects_duplicate_contact(lib, member):
    with pytest.raises(ValidationFailureError, match="already exists"):
        lib.add_member(Member(None, "Other", email="ian@example.com", phone="5550001111"))
    assert len(lib.list_members()) == 1


@pytest.mark.parametrize("email, phone", [("not-an-email", None), ("ok@example.com", "12")])
def test_add_member_validation(lib, email, phone):
    with pytest.raises(ValidationFailureError):
        lib.add_member(Member(None, "Bad", "Data", email=email, phone=phone))


def test_unknown_membership_type():
    with pytest.raises(ValueError):
        Member(None, "Bad", membership_type="Visitor")


def test_seeded_library(seeded_lib):
    assert len(seeded_lib.list_books()) == 20
    assert len(seeded_lib.list_members()) == 15
    assert len(seeded_lib.list_transactions()) == 25
    assert seeded_lib.find_book(4).title == "Calculus Made Easy"
    assert seeded_lib.find_inventory_drift() == []


def test_seeded_transaction_filters(seeded_lib):
    for tx in seeded_lib.list_transactions(status=TransactionStatus.RETURNED):
        assert tx.return_date is not None
    for tx in seeded_lib.list_transactions(book_id=4):
        assert tx.book_id == 4
    assert len(seeded_lib.list_transactions(book_id=4, status=TransactionStatus.PENDING)) == 1
    assert len(seeded_lib.list_transactions(book_id=4, status=TransactionStatus.OVERDUE)) == 1


def test_sample_data_loads_only_once(seeded_lib):
    assert load_sample_data(seeded_lib.db_file) == 0
    assert len(seeded_lib.list_books()) == 20


def test_missing_sample_file_loads_nothing(lib, tmp_path):
    assert load_sample_data(lib.db_file, path=str(tmp_path / "missing.json")) == 0
    assert lib.list_books() == []


def test_drift_is_reported(lib, member, make_book):
    book = make_book(copies=2)
    lib.issue_book(member.member_id, book.book_id)

    # Simulate a write that bypassed the lending engine
    conn = get_db_connection(lib.db_file)
    try:
        conn.execute("UPDATE books SET available_copies = 2 WHERE book_id = ?", (book.book_id,))
    finally:
        conn.close()

    assert lib.find_inventory_drift() == [
        {"book_id": book.book_id, "total_copies": 2, "available_copies": 2, "open_loans": 1}
    ]
