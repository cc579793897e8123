"""
models/game.py — Game table definition.

A game is one settlement session inside a group. Its transactions form an
ordered collection; `position` is kept contiguous by the ordering list so
public-link edits can address rows by index while each row keeps its own id.

`public_token` is assigned once at creation and never changes.
"""

from __future__ import annotations

from datetime import date as date_type, datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, String, UniqueConstraint, false, func
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Game(db.Model):
    __tablename__ = "games"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_games_name_nonempty",
        ),
        UniqueConstraint("public_token", name="uq_games_public_token"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    # Calendar date of the session; distinct from created_at and used by stats.
    date: Mapped[date_type | None] = mapped_column(
        Date,
        nullable=True,
    )

    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    public_token: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    settled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by_user_id],
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="games",
    )

    transactions: Mapped[list["Transaction"]] = relationship(  # noqa: F821
        "Transaction",
        back_populates="game",
        order_by="Transaction.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Game id={self.id} "
            f"token={self.public_token!r} "
            f"settled={self.settled}>"
        )
