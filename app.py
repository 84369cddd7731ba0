import os
import logging
from functools import wraps
from datetime import datetime, timezone
from flask import Flask, request, jsonify, session
from models import db, User, UserChallenge

from challenge.logger import configure_logging
from challenge.metrics import build_checklist, challenge_day, compute_metrics, streak_milestone
from challenge.progress import ProgressStore
from challenge.schedule import ChallengeConfig, calendar_for, parse_timestamp, summarize_plan

log = logging.getLogger("challenge.app")

basedir = os.path.abspath(os.path.dirname(__file__))

app = Flask(__name__)
app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(basedir, "upload_challenge.db"),
)
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

db.init_app(app)

DEFAULT_CHALLENGE_KEY = "creator-challenge"
VIDEO_TYPES = ("long", "shorts")
ASPECT_RATIOS = {"long": "16:9", "shorts": "9:16"}


# ── Helpers ───────────────────────────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_user():
    """Return the logged-in User object, or None."""
    uid = session.get("user_id")
    if uid is None:
        return None
    return db.session.get(User, uid)


def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return jsonify({"error": "Unauthorized. Please sign in."}), 401
        return f(*args, **kwargs)
    return decorated


def request_data():
    """JSON body if there is one, otherwise the submitted form."""
    return request.get_json(silent=True) or request.form.to_dict()


def _naive_utc(value):
    """Parse an ISO timestamp into the naive UTC the database stores."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _clean_video_type(value):
    if value in VIDEO_TYPES:
        return value
    return None


def _apply_config(row, raw_config, body):
    """Clamp the submitted plan and mirror it into the explicit columns.

    Top-level durationMonths / cadenceEveryDays / videosPerCadence win over the
    values nested in ``config``.
    """
    merged = dict(raw_config or {})
    for key in ("durationMonths", "cadenceEveryDays", "videosPerCadence"):
        if body.get(key) is not None:
            merged[key] = body[key]
    plan = ChallengeConfig.from_dict(merged)

    video_type = _clean_video_type(body.get("videoType") or merged.get("videoType") or row.video_type)
    stored = plan.to_dict()
    stored["videoType"] = video_type
    row.config = stored
    row.duration_months = plan.duration_months
    row.cadence_every_days = plan.cadence_every_days
    row.videos_per_cadence = plan.videos_per_cadence
    row.video_type = video_type


def _active_challenge(user):
    return (UserChallenge.query
            .filter_by(user_id=user.id, status="active")
            .order_by(UserChallenge.updated_at.desc())
            .first())


def _owned_challenge(challenge_id, user):
    try:
        challenge_id = int(challenge_id)
    except (TypeError, ValueError):
        return None
    return (UserChallenge.query
            .filter_by(id=challenge_id, user_id=user.id)
            .filter(UserChallenge.status != "deleted")
            .first())


# ── Auth routes ───────────────────────────────────────────────────────────────

@app.route("/register", methods=["POST"])
def register():
    data = request_data()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return jsonify({"error": "Username and password are required."}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"error": "That username is already taken."}), 400
    u = User(username=username)
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    session["user_id"] = u.id
    return jsonify({"success": True, "id": u.id}), 201


@app.route("/login", methods=["POST"])
def login():
    data = request_data()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    user = User.query.filter_by(username=username).first()
    if user and user.check_password(password):
        session["user_id"] = user.id
        return jsonify({"success": True, "id": user.id})
    return jsonify({"error": "Invalid username or password."}), 401


@app.route("/logout")
def logout():
    session.pop("user_id", None)
    return jsonify({"success": True})


# ── Challenge store API ───────────────────────────────────────────────────────

@app.route("/api/user-challenge", methods=["GET"])
@login_required
def get_user_challenge():
    row = _active_challenge(current_user())
    return jsonify({"challenge": row.to_dict() if row else None})


@app.route("/api/user-challenge", methods=["POST"])
@login_required
def create_user_challenge():
    user = current_user()
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "No data provided"}), 400

    challenge_key = body.get("challengeId") or DEFAULT_CHALLENGE_KEY
    progress = body.get("progress") if isinstance(body.get("progress"), list) else []

    # Upsert on (user, challengeId)
    row = UserChallenge.query.filter_by(user_id=user.id, challenge_id=challenge_key).first()
    if row is None:
        row = UserChallenge(user_id=user.id, challenge_id=challenge_key)
        db.session.add(row)
    _apply_config(row, body.get("config"), body)
    row.progress = progress
    row.started_at = _naive_utc(body.get("startedAt"))
    row.status = "active"
    db.session.commit()

    log.info("Saved challenge %s for user %s (%s progress records)", row.id, user.id, len(progress))
    return jsonify({"success": True, "id": row.id, "challenge": row.to_dict()})


@app.route("/api/user-challenge", methods=["PATCH"])
@login_required
def patch_user_challenge():
    user = current_user()
    challenge_id = request.args.get("id")
    if not challenge_id:
        return jsonify({"error": "id is required"}), 400
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "No data provided"}), 400
    row = _owned_challenge(challenge_id, user)
    if row is None:
        return jsonify({"error": "Challenge not found"}), 404

    # Each field is applied on its own; absent fields are left alone.
    if "config" in body or any(k in body for k in ("durationMonths", "cadenceEveryDays", "videosPerCadence")):
        _apply_config(row, body.get("config") or row.config, body)
    elif "videoType" in body:
        row.video_type = _clean_video_type(body.get("videoType"))
        row.config = dict(row.config or {}, videoType=row.video_type)
    if isinstance(body.get("progress"), list):
        row.progress = body["progress"]
    if "startedAt" in body:
        row.started_at = _naive_utc(body.get("startedAt"))
    if body.get("status") in ("active", "completed", "deleted"):
        row.status = body["status"]
    db.session.commit()
    return jsonify({"success": True, "challenge": row.to_dict()})


@app.route("/api/user-challenge", methods=["DELETE"])
@login_required
def delete_user_challenge():
    user = current_user()
    challenge_id = request.args.get("id")
    if not challenge_id:
        return jsonify({"error": "id is required"}), 400
    row = _owned_challenge(challenge_id, user)
    if row is None:
        return jsonify({"error": "Challenge not found"}), 404
    row.status = "deleted"
    db.session.commit()
    log.info("Marked challenge %s deleted for user %s", row.id, user.id)
    return jsonify({"success": True})


@app.route("/api/challenges/<int:challenge_id>", methods=["DELETE"])
@login_required
def delete_challenge(challenge_id):
    user = current_user()
    row = db.session.get(UserChallenge, challenge_id)
    if row is None:
        return jsonify({"error": "Challenge not found"}), 404
    if row.user_id != user.id:
        return jsonify({"error": "Forbidden", "message": "You can only delete your own challenges"}), 403
    db.session.delete(row)
    db.session.commit()
    active = UserChallenge.query.filter_by(user_id=user.id, status="active").count()
    log.info("Deleted challenge %s for user %s", challenge_id, user.id)
    return jsonify({"message": "Challenge deleted successfully", "activeChallengeCount": active})


@app.route("/api/user-challenge/<int:challenge_id>/slots/<int:index>", methods=["POST"])
@login_required
def update_slot(challenge_id, index):
    """Edit one checklist entry: title, notes, thumbnail and/or the uploaded flag."""
    row = _owned_challenge(challenge_id, current_user())
    if row is None:
        return jsonify({"error": "Challenge not found"}), 404
    data = request.get_json(silent=True) or {}

    total = len(calendar_for(ChallengeConfig.from_dict(row.config or {}), row.started_at_utc))
    if index >= total:
        return jsonify({"error": f"Slot {index} is outside the challenge calendar ({total} videos)."}), 400

    progress = ProgressStore.from_list(row.progress)
    record = progress.edit(index, title=data.get("title"), notes=data.get("notes"),
                           thumbnail=data.get("thumbnail"))
    if "uploaded" in data:
        record = progress.mark_uploaded(index, bool(data["uploaded"]), now=utcnow())
    row.progress = progress.to_list()
    db.session.commit()
    return jsonify({"success": True, "index": index, "record": record.to_dict()})


# ── Dashboard ─────────────────────────────────────────────────────────────────

@app.route("/api/user-challenge/dashboard")
@login_required
def dashboard():
    row = _active_challenge(current_user())
    if row is None:
        return jsonify({"challenge": None})

    now = parse_timestamp(request.args.get("now")) or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    plan = ChallengeConfig.from_dict(row.config or {})
    start = row.started_at_utc
    calendar = calendar_for(plan, start)
    progress = ProgressStore.from_list(row.progress)
    metrics = compute_metrics(calendar, progress, now)
    milestone = streak_milestone(metrics.current_streak)
    day = challenge_day(start, now, plan.total_days)

    return jsonify({
        "challenge": row.to_dict(),
        "state": "progress" if start else "videoType",
        "summary": summarize_plan(plan).to_dict(),
        "metrics": metrics.to_dict(),
        "day": {"day": day.day, "totalDays": day.total_days, "daysElapsed": day.days_elapsed},
        "milestone": ({"days": milestone.days, "title": milestone.title, "badge": milestone.badge}
                      if milestone else None),
        "aspectRatio": ASPECT_RATIOS.get(row.video_type),
        "staleIndices": progress.stale_indices(len(calendar)),
        "schedule": build_checklist(calendar, progress, now),
    })


with app.app_context():
    db.create_all()
    from sqlalchemy import inspect as sa_inspect, text as sa_text

    def _add_column_if_missing(table, column, col_def):
        cols = [c["name"] for c in sa_inspect(db.engine).get_columns(table)]
        if column not in cols:
            with db.engine.connect() as _conn:
                _conn.execute(sa_text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))
                _conn.commit()

    _add_column_if_missing("user_challenge", "status", "status VARCHAR(20) NOT NULL DEFAULT 'active'")
    _add_column_if_missing("user_challenge", "video_type", "video_type VARCHAR(10)")
    _add_column_if_missing("user_challenge", "started_at", "started_at DATETIME")

if __name__ == "__main__":
    configure_logging()
    app.run(debug=True)
