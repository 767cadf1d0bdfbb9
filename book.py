from __future__ import annotations

from decimal import Decimal


class Book:
    """A catalog title and its copy counts."""

    def __init__(self, book_id: int | None, title: str, author: str | None = None, category: str | None = None,
                 total_copies: int = 1, available_copies: int | None = None,
                 publisher: str | None = None, publication_year: str | None = None,
                 isbn: str | None = None, price: Decimal | None = None,
                 created_at: str | None = None) -> None:
        self.book_id = book_id
        self.title = title.strip()
        self.author = author.strip() if author else author
        self.category = category
        self.total_copies = total_copies
        # A freshly cataloged title has every copy on the shelf
        self.available_copies = total_copies if available_copies is None else available_copies
        self.publisher = publisher
        self.publication_year = publication_year
        self.isbn = isbn.strip() if isbn else None
        self.price = Decimal(str(price)) if price is not None else None
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.available_copies}/{self.total_copies} available)"

    @property
    def on_loan(self) -> int:
        return self.total_copies - self.available_copies

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "publisher": self.publisher,
            "publication_year": self.publication_year,
            "isbn": self.isbn,
            "price": self.price,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        price = data.get("price")
        return Book(
            book_id=data.get("book_id"),
            title=data["title"],
            author=data.get("author"),
            category=data.get("category"),
            total_copies=int(data.get("total_copies", 1)),
            available_copies=data.get("available_copies"),
            publisher=data.get("publisher"),
            publication_year=data.get("publication_year"),
            isbn=data.get("isbn"),
            price=Decimal(str(price)) if price is not None else None,
            created_at=data.get("created_at"),
        )
