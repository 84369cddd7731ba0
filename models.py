from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def _utcnow() -> datetime:
    # SQLite drops tzinfo, so rows hold naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    challenges = db.relationship("UserChallenge", backref="user", lazy=True, cascade="all, delete-orphan")

    def set_password(self, plaintext: str):
        self.password_hash = generate_password_hash(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return check_password_hash(self.password_hash, plaintext)

    def __repr__(self):
        return f"<User {self.username}>"


class UserChallenge(db.Model):
    __tablename__ = "user_challenge"
    __table_args__ = (db.UniqueConstraint("user_id", "challenge_id", name="uq_user_challenge"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    challenge_id = db.Column(db.String(80), nullable=False, default="creator-challenge")
    started_at = db.Column(db.DateTime, nullable=True)
    config = db.Column(db.JSON, nullable=False, default=dict)
    # Ordered array; position N holds the record for slot index N
    progress = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default="active")

    # Explicit copies of the config fields for plain SQL queries
    duration_months    = db.Column(db.Integer, nullable=True)
    cadence_every_days = db.Column(db.Integer, nullable=True)
    videos_per_cadence = db.Column(db.Integer, nullable=True)
    video_type         = db.Column(db.String(10), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def started_at_utc(self):
        """started_at with its UTC tzinfo restored."""
        if self.started_at is None:
            return None
        return self.started_at.replace(tzinfo=timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "challengeId": self.challenge_id,
            "startedAt": _iso(self.started_at),
            "config": dict(self.config or {}),
            "progress": list(self.progress or []),
            "status": self.status,
            "durationMonths": self.duration_months,
            "cadenceEveryDays": self.cadence_every_days,
            "videosPerCadence": self.videos_per_cadence,
            "videoType": self.video_type,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<UserChallenge {self.id} user={self.user_id} {self.status}>"
