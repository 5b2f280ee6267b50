"""
Bug Tracker
Bug relationship model.

One row per link between two bugs, always stored in the canonical (forward)
direction of its type. The complementary view (e.g. "parent of" for a
"child of" row) is derived at read time and never stored.

The endpoint columns deliberately carry no foreign keys: deleting a bug does
not cascade here, and ``RelationshipStore.delete`` tolerates a destination
that no longer exists.
"""

from dataclasses import dataclass

from bugtracker.models import db


class BugRelationship(db.Model):
    """Stored relationship row: source_bug → destination_bug with a type code."""

    __tablename__ = "bug_relationship"

    id = db.Column(db.Integer, primary_key=True)
    source_bug_id = db.Column(db.Integer, nullable=False, index=True)
    destination_bug_id = db.Column(db.Integer, nullable=False, index=True)
    relationship_type = db.Column(
        db.Integer, nullable=False, default=1,
        comment="0 duplicate-of | 1 related-to | 2 child-of | 3 parent-of | 4 has-duplicate | custom",
    )

    def __repr__(self):
        return (
            f"<BugRelationship {self.id}: #{self.source_bug_id} "
            f"-[{self.relationship_type}]-> #{self.destination_bug_id}>"
        )


@dataclass
class RelationshipData:
    """A stored relationship enriched with both endpoints' project ids.

    ``src_project_id`` / ``dest_project_id`` are ``None`` when the bug on
    that side no longer exists.
    """

    id: int
    src_bug_id: int
    dest_bug_id: int
    type: int
    src_project_id: int | None = None
    dest_project_id: int | None = None

    @classmethod
    def from_row(cls, row, src_project_id=None, dest_project_id=None):
        return cls(
            id=row.id,
            src_bug_id=row.source_bug_id,
            dest_bug_id=row.destination_bug_id,
            type=row.relationship_type,
            src_project_id=src_project_id,
            dest_project_id=dest_project_id,
        )

    @property
    def crosses_projects(self):
        if self.src_project_id is None or self.dest_project_id is None:
            return False
        return self.src_project_id != self.dest_project_id

    def to_dict(self):
        return {
            "id": self.id,
            "src_bug_id": self.src_bug_id,
            "dest_bug_id": self.dest_bug_id,
            "type": self.type,
            "src_project_id": self.src_project_id,
            "dest_project_id": self.dest_project_id,
        }


@dataclass
class RelationshipView:
    """A relationship as seen from one of its endpoints."""

    relationship_id: int
    bug_id: int
    other_bug_id: int
    type: int
    description: str
    other_project_id: int | None = None

    def to_dict(self):
        return {
            "relationship_id": self.relationship_id,
            "bug_id": self.bug_id,
            "other_bug_id": self.other_bug_id,
            "type": self.type,
            "description": self.description,
            "other_project_id": self.other_project_id,
        }
