"""
Relationship type registry.

Every relationship row carries an integer type code. The registry maps each
code to its metadata: API name, human-readable description, complementary
type (the same link seen from the other bug) and the forward flag (whether
rows of this type are stored in the direction the caller names them).

Built-in types:

    code  member          api name        forward  complement
    0     DUPLICATE_OF    duplicate-of    yes      HAS_DUPLICATE
    1     RELATED_TO      related-to      yes      RELATED_TO
    2     DEPENDS_ON      child-of        yes      BLOCKED_BY
    3     BLOCKED_BY      parent-of       no       DEPENDS_ON
    4     HAS_DUPLICATE   has-duplicate   no       DUPLICATE_OF

A registry is immutable. Custom types from configuration are added once at
startup with ``with_types()``, which returns a new registry.

Usage:
    registry = build_registry(app.config["CUSTOM_RELATIONSHIP_TYPES"])
    registry.complementary_type(RelationshipType.DEPENDS_ON)   # -> 3
    registry.normalize(5, 10, RelationshipType.BLOCKED_BY)      # -> (10, 5, 2)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, NamedTuple

from bugtracker.core.exceptions import UnknownRelationshipTypeError

logger = logging.getLogger(__name__)

# Filter sentinels accepted by name_for_api() / option lists
REL_ANY = -1
REL_NONE = -2


class RelationshipType(enum.IntEnum):
    """Built-in relationship type codes.

    DEPENDS_ON is the dependency edge between a child bug (source) and the
    parent bug that depends on it (destination): the child blocks the parent.
    BLOCKED_BY is the same edge seen from the parent.
    """

    DUPLICATE_OF = 0
    RELATED_TO = 1
    DEPENDS_ON = 2
    BLOCKED_BY = 3
    HAS_DUPLICATE = 4


class Side(str, enum.Enum):
    """Endpoint of a relationship a description is written for."""

    SOURCE = "source"
    DESTINATION = "destination"


@dataclass(frozen=True)
class RelationshipTypeInfo:
    """Metadata for one relationship type code."""

    code: int
    name: str
    description: str
    complementary: int
    forward: bool = True
    edge_style: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "RelationshipTypeInfo":
        """Build from a configuration entry.

        Expected keys: code, name, description, complementary; optional
        forward (default True) and edge_style.
        """
        missing = [k for k in ("code", "name", "description", "complementary") if k not in data]
        if missing:
            raise ValueError(f"Relationship type definition missing {', '.join(missing)}: {data!r}")
        return cls(
            code=int(data["code"]),
            name=str(data["name"]),
            description=str(data["description"]),
            complementary=int(data["complementary"]),
            forward=bool(data.get("forward", True)),
            edge_style=dict(data.get("edge_style") or {}),
        )

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "complementary": self.complementary,
            "forward": self.forward,
            "edge_style": dict(self.edge_style),
        }


class StoredLink(NamedTuple):
    """A (source, destination, type) triple in canonical storage direction."""

    src_bug_id: int
    dest_bug_id: int
    type: int


BUILTIN_TYPES = (
    RelationshipTypeInfo(
        code=RelationshipType.DUPLICATE_OF,
        name="duplicate-of",
        description="duplicate of",
        complementary=RelationshipType.HAS_DUPLICATE,
        forward=True,
        edge_style={"style": "dashed", "color": "#808080"},
    ),
    RelationshipTypeInfo(
        code=RelationshipType.RELATED_TO,
        name="related-to",
        description="related to",
        complementary=RelationshipType.RELATED_TO,
        forward=True,
    ),
    RelationshipTypeInfo(
        code=RelationshipType.DEPENDS_ON,
        name="child-of",
        description="child of",
        complementary=RelationshipType.BLOCKED_BY,
        forward=True,
        edge_style={"color": "#C00000", "dir": "forward"},
    ),
    RelationshipTypeInfo(
        code=RelationshipType.BLOCKED_BY,
        name="parent-of",
        description="parent of",
        complementary=RelationshipType.DEPENDS_ON,
        forward=False,
        edge_style={"color": "#C00000", "dir": "back"},
    ),
    RelationshipTypeInfo(
        code=RelationshipType.HAS_DUPLICATE,
        name="has-duplicate",
        description="has duplicate",
        complementary=RelationshipType.DUPLICATE_OF,
        forward=False,
    ),
)


class RelationshipTypeRegistry:
    """Immutable code → RelationshipTypeInfo lookup table."""

    def __init__(self, types: Iterable[RelationshipTypeInfo] = BUILTIN_TYPES):
        table: dict[int, RelationshipTypeInfo] = {}
        names: set[str] = set()
        for info in types:
            if info.code in table:
                raise ValueError(f"Duplicate relationship type code: {info.code}")
            if info.code in (REL_ANY, REL_NONE):
                raise ValueError(f"Relationship type code {info.code} is reserved")
            if info.name in names:
                raise ValueError(f"Duplicate relationship type name: {info.name!r}")
            table[info.code] = info
            names.add(info.name)
        _check_complements(table)
        self._types = MappingProxyType(table)

    # ── Construction ─────────────────────────────────────────────────────

    def with_types(self, *infos: RelationshipTypeInfo) -> "RelationshipTypeRegistry":
        """Return a new registry with ``infos`` added.

        Raises:
            ValueError: a code or name is already registered, or a complement
                does not resolve back to its type.
        """
        return RelationshipTypeRegistry([*self._types.values(), *infos])

    # ── Lookup ───────────────────────────────────────────────────────────

    def get(self, code: int) -> RelationshipTypeInfo:
        try:
            return self._types[int(code)]
        except (KeyError, TypeError, ValueError):
            raise UnknownRelationshipTypeError(code) from None

    def __contains__(self, code) -> bool:
        try:
            return int(code) in self._types
        except (TypeError, ValueError):
            return False

    def __iter__(self) -> Iterator[RelationshipTypeInfo]:
        return iter(sorted(self._types.values(), key=lambda info: info.code))

    def __len__(self) -> int:
        return len(self._types)

    @property
    def codes(self) -> list[int]:
        return sorted(self._types)

    def complementary_type(self, code: int) -> int:
        """The type describing the same link from the opposite endpoint."""
        return self.get(code).complementary

    def is_forward(self, code: int) -> bool:
        return self.get(code).forward

    def display_name(self, code: int) -> str:
        return self.get(code).name

    def description(self, code: int, side: Side = Side.SOURCE) -> str:
        """Human-readable description from the source or destination viewpoint."""
        if Side(side) is Side.DESTINATION:
            return self.get(self.complementary_type(code)).description
        return self.get(code).description

    def name_for_api(self, code: int) -> str:
        """API name of a type code; also maps the REL_ANY / REL_NONE filter sentinels."""
        if code == REL_ANY:
            return "any"
        if code == REL_NONE:
            return "none"
        return self.display_name(code)

    def code_for(self, value) -> int:
        """Parse a type given as an int code, a numeric string or an API name."""
        if isinstance(value, bool):
            raise UnknownRelationshipTypeError(value)
        if isinstance(value, int):
            return self.get(value).code
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return self.get(int(text)).code
            for info in self._types.values():
                if info.name == text:
                    return info.code
        raise UnknownRelationshipTypeError(value)

    # ── Direction ────────────────────────────────────────────────────────

    def normalize(self, src_bug_id: int, dest_bug_id: int, code: int) -> StoredLink:
        """Rewrite a caller-direction triple into canonical storage direction."""
        info = self.get(code)
        if info.forward:
            return StoredLink(int(src_bug_id), int(dest_bug_id), info.code)
        return StoredLink(int(dest_bug_id), int(src_bug_id), info.complementary)

    def options(self, include_any: bool = False, include_none: bool = False) -> list[dict]:
        """Option list for type pickers, in code order."""
        out = []
        if include_any:
            out.append({"code": REL_ANY, "name": "any", "label": "[any]"})
        if include_none:
            out.append({"code": REL_NONE, "name": "none", "label": "[none]"})
        for info in self:
            out.append({"code": info.code, "name": info.name, "label": info.description})
        return out


def _check_complements(table: Mapping[int, RelationshipTypeInfo]) -> None:
    for info in table.values():
        complement = table.get(info.complementary)
        if complement is None:
            raise ValueError(
                f"Relationship type {info.code} ({info.name}) has unregistered "
                f"complementary type {info.complementary}"
            )
        if complement.complementary != info.code:
            raise ValueError(
                f"Relationship types {info.code} and {complement.code} are not "
                f"mutual complements"
            )
        if not info.forward and not complement.forward:
            raise ValueError(
                f"Relationship types {info.code} and {complement.code} are both "
                f"non-forward; one side of a pair must be stored"
            )


def build_registry(custom_types: Iterable[dict] | None = None) -> RelationshipTypeRegistry:
    """Built-in registry augmented with custom type definitions from config."""
    registry = RelationshipTypeRegistry()
    infos = [RelationshipTypeInfo.from_dict(d) for d in (custom_types or [])]
    if infos:
        registry = registry.with_types(*infos)
        logger.info(
            "Registered %d custom relationship type(s): %s",
            len(infos), ", ".join(i.name for i in infos),
        )
    return registry
