"""
Firestore query helpers.
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def where_filter(query, field_path: str, op_string: str, value):
    """
    Apply one where clause to a Firestore collection or query using the
    keyword filter API (positional where() arguments are deprecated).

    Usage:
        query = where_filter(reports_ref, "status", "in", ["REPORTED", "IN_REVIEW"])
        query = where_filter(query, "status", "not-in", ["REJECTED"])
    """
    return query.where(filter=FieldFilter(field_path, op_string, value))
