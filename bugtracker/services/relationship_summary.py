"""Relationship summaries for API listings and plain-text (email style) bodies.

Pure formatting over ``RelationshipStore.views_for``; performs no writes.
"""
from bugtracker.models.bug import Project, format_bug_id, status_name

BLOCKING_WARNING = "Not all the children of this issue are yet resolved or closed."

DESCRIPTION_WIDTH = 20
BUG_ID_WIDTH = 8


def summary_wrap_at(separator_width):
    """Summary column width for the text summary."""
    return max(separator_width - 28, 4)


def _truncate(text, wrap_at):
    if len(text) <= wrap_at:
        return text
    return text[: wrap_at - 3] + "..."


def relationship_rows(store, bug_id):
    """Rows for the API listing of one bug's relationships.

    Returns ``(rows, cross_project)``. Rows whose other bug no longer exists
    are omitted, like in the text summary.
    """
    views, cross_project = store.views_for(bug_id)
    others = store.bugs.fetch_many(v.other_bug_id for v in views)
    project_names = {}
    if cross_project:
        ids = {b.project_id for b in others.values()}
        project_names = {
            p.id: p.name for p in Project.query.filter(Project.id.in_(ids)).all()
        } if ids else {}

    rows = []
    for view in views:
        other = others.get(view.other_bug_id)
        if other is None:
            continue
        row = view.to_dict()
        row.update({
            "type_name": store.registry.name_for_api(view.type),
            "other_display_id": format_bug_id(other.id),
            "other_summary": other.summary,
            "other_status": other.status,
            "other_status_label": status_name(other.status),
            "other_resolution": other.resolution,
            "other_handler": other.handler,
        })
        if cross_project:
            row["other_project_name"] = project_names.get(other.project_id, "")
        rows.append(row)
    return rows, cross_project


def summary_text(store, bug_id, separator_width=70):
    """Fixed-width text block, one line per relationship.

    Each line: description padded to 20, display id padded to 8, then the
    other bug's summary truncated with "..." to fit the separator width.
    """
    wrap_at = summary_wrap_at(separator_width)
    views, _ = store.views_for(bug_id)
    others = store.bugs.fetch_many(v.other_bug_id for v in views)
    lines = []
    for view in views:
        other = others.get(view.other_bug_id)
        if other is None:
            continue
        lines.append(
            view.description.ljust(DESCRIPTION_WIDTH)
            + format_bug_id(other.id).ljust(BUG_ID_WIDTH)
            + _truncate(other.summary or "", wrap_at)
            + "\n"
        )
    return "".join(lines)

