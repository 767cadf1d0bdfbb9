from __future__ import annotations

from enum import Enum


class MembershipType(str, Enum):
    STUDENT = "Student"
    FACULTY = "Faculty"
    STAFF = "Staff"


class Member:
    """An enrolled library member. The lending engine only reads these."""

    def __init__(self, member_id: int | None, first_name: str, last_name: str | None = None,
                 email: str | None = None, phone: str | None = None, address: str | None = None,
                 membership_date: str | None = None,
                 membership_type: MembershipType | str = MembershipType.STUDENT) -> None:
        self.member_id = member_id
        self.first_name = first_name.strip()
        self.last_name = last_name.strip() if last_name else last_name
        self.email = email.strip().lower() if email else None
        self.phone = phone.strip() if phone else None
        self.address = address
        self.membership_date = membership_date
        self.membership_type = MembershipType(membership_type)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.full_name} ({self.membership_type.value})"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "membership_date": self.membership_date,
            "membership_type": self.membership_type.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(
            member_id=data.get("member_id"),
            first_name=data["first_name"],
            last_name=data.get("last_name"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            membership_date=data.get("membership_date"),
            membership_type=data.get("membership_type") or MembershipType.STUDENT,
        )
