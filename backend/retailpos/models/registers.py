from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class RegisterSession(db.Model):
    """
    Cash-drawer shift for one store.

    LIFECYCLE:
    - open: closed_at IS NULL
    - closed: closed_at set together with expected/actual cash and discrepancy

    At most one open session per store, enforced by a partial unique index
    so that two concurrent opens cannot both commit. Sales belong to the
    session through sales.register_session_id, not by time range.
    """
    __tablename__ = "register_sessions"
    __table_args__ = (
        db.Index(
            "uq_register_sessions_open_store",
            "store_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    opened_by_user_id = db.Column(db.Integer, nullable=False)
    closed_by_user_id = db.Column(db.Integer, nullable=True)

    opening_float = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expected_cash = db.Column(db.Numeric(12, 2), nullable=True)
    actual_cash = db.Column(db.Numeric(12, 2), nullable=True)
    discrepancy = db.Column(db.Numeric(12, 2), nullable=True)  # actual - expected

    # Close-out notes
    notes = db.Column(db.Text, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "opened_by_user_id": self.opened_by_user_id,
            "closed_by_user_id": self.closed_by_user_id,
            "opening_float": money_str(self.opening_float),
            "expected_cash": money_str(self.expected_cash),
            "actual_cash": money_str(self.actual_cash),
            "discrepancy": money_str(self.discrepancy),
            "notes": self.notes,
            "is_open": self.is_open,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
        }
