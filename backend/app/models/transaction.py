"""
models/transaction.py — Transaction (ledger row) table definition.

Key design points:
  - `id` is the stable row identity used by the authenticated bulk routes.
  - `position` is the row's index within its game; the public-link routes
    address rows by position. Game.transactions keeps it contiguous.
  - `amount` uses Numeric(14, 4) — never Float. Positive = won, negative = lost.
  - `player_name` defaults to the placeholder "_" for unnamed rows.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db

PLACEHOLDER_NAME = "_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(db.Model):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)

    game_id: Mapped[int] = mapped_column(
        ForeignKey("games.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Nullable: rows for people without an account carry only a player name.
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    player_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default=PLACEHOLDER_NAME,
        server_default=PLACEHOLDER_NAME,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 4),
        nullable=False,
        default=Decimal("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    game: Mapped["Game"] = relationship(  # noqa: F821
        "Game",
        back_populates="transactions",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Transaction id={self.id} "
            f"game_id={self.game_id} "
            f"position={self.position} "
            f"amount={self.amount}>"
        )
