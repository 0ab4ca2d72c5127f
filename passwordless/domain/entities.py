from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Token:
    id: str
    recipient: str
    code_hash: bytes
    created_at: datetime
    expires_at: datetime
    attempts: int = 0

    def __post_init__(self):
        if not self.id:
            raise ValueError("token id is required")
        if self.attempts < 0:
            raise ValueError("attempts cannot be negative")
        self.created_at = _as_utc(self.created_at)
        self.expires_at = _as_utc(self.expires_at)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def register_failed_attempt(self) -> int:
        self.attempts += 1
        return self.attempts

    def to_record(self) -> dict[str, Any]:
        """Flat, JSON-safe representation used by text-based backends."""
        return {
            "id": self.id,
            "recipient": self.recipient,
            "code_hash": self.code_hash.hex(),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "attempts": self.attempts,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Token":
        return cls(
            id=str(record["id"]),
            recipient=str(record["recipient"]),
            code_hash=bytes.fromhex(record["code_hash"]),
            created_at=datetime.fromisoformat(record["created_at"]),
            expires_at=datetime.fromisoformat(record["expires_at"]),
            attempts=int(record.get("attempts") or 0),
        )


def _as_utc(value: datetime) -> datetime:
    # naive datetimes coming back from a backend are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
