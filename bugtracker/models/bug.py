"""
Bug Tracker
Bug domain models.

Models:
    - Project:     container that owns bugs
    - Bug:         a bug / issue record
    - BugMonitor:  a user watching a bug (receives notifications)

Status codes are ordered integers so that thresholds ("resolved or above",
"read-only from") can be compared directly:

    new(10) → feedback(20) → acknowledged(30) → confirmed(40)
            → assigned(50) → resolved(80) → closed(90)
"""

from datetime import datetime, timezone

from bugtracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_NEW = 10
STATUS_FEEDBACK = 20
STATUS_ACKNOWLEDGED = 30
STATUS_CONFIRMED = 40
STATUS_ASSIGNED = 50
STATUS_RESOLVED = 80
STATUS_CLOSED = 90

BUG_STATUSES = {
    STATUS_NEW: "new",
    STATUS_FEEDBACK: "feedback",
    STATUS_ACKNOWLEDGED: "acknowledged",
    STATUS_CONFIRMED: "confirmed",
    STATUS_ASSIGNED: "assigned",
    STATUS_RESOLVED: "resolved",
    STATUS_CLOSED: "closed",
}

BUG_RESOLUTIONS = {
    "open", "fixed", "reopened", "unable_to_reproduce",
    "not_fixable", "duplicate", "no_change_required", "suspended", "wont_fix",
}


def status_name(status):
    """Return the label for a status code, or the code itself as text."""
    return BUG_STATUSES.get(status, str(status))


def format_bug_id(bug_id):
    """Zero-padded display form of a bug id, e.g. 42 -> '0000042'."""
    return f"{int(bug_id):07d}"


class Project(db.Model):
    """A project groups bugs; cross-project links are flagged in listings."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, default="")

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    bugs = db.relationship(
        "Bug", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Bug(db.Model):
    """
    Bug / issue record.

    Relationships to other bugs live in ``bug_relationship`` and are managed
    exclusively through ``RelationshipStore``; the row carries no back
    references so that a relationship may outlive a hard-deleted bug.
    """

    __tablename__ = "bugs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    summary = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    steps_to_reproduce = db.Column(db.Text, default="")

    status = db.Column(
        db.Integer, default=STATUS_NEW, nullable=False,
        comment="10 new | 20 feedback | 30 acknowledged | 40 confirmed | 50 assigned | 80 resolved | 90 closed",
    )
    resolution = db.Column(db.String(30), default="open")
    severity = db.Column(db.String(20), default="minor")
    priority = db.Column(db.String(20), default="normal")

    reporter = db.Column(db.String(100), default="")
    handler = db.Column(db.String(100), default="", comment="User assigned to fix the bug")

    # ── Audit
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    monitors = db.relationship(
        "BugMonitor", backref="bug", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def status_label(self):
        return status_name(self.status)

    def to_dict(self):
        return {
            "id": self.id,
            "display_id": format_bug_id(self.id) if self.id else None,
            "project_id": self.project_id,
            "summary": self.summary,
            "description": self.description,
            "steps_to_reproduce": self.steps_to_reproduce,
            "status": self.status,
            "status_label": self.status_label,
            "resolution": self.resolution,
            "severity": self.severity,
            "priority": self.priority,
            "reporter": self.reporter,
            "handler": self.handler,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Bug {self.id}: [{self.status_label}] {self.summary[:30]}>"


class BugMonitor(db.Model):
    """A user watching a bug."""

    __tablename__ = "bug_monitors"

    id = db.Column(db.Integer, primary_key=True)
    bug_id = db.Column(
        db.Integer, db.ForeignKey("bugs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    username = db.Column(db.String(100), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("bug_id", "username", name="uq_bug_monitor"),
    )

    def to_dict(self):
        return {"id": self.id, "bug_id": self.bug_id, "username": self.username}

    def __repr__(self):
        return f"<BugMonitor bug#{self.bug_id} {self.username}>"
