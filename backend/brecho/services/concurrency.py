# Overview: Row locking for multi-step writes.

from __future__ import annotations


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a workflow is about to change.

    NOTE: SQLite ignores FOR UPDATE; version_id columns still catch
    concurrent edits there.
    """
    return query.with_for_update()
