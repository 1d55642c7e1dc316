# catalog_sync/services/conflict.py
import enum
from typing import Optional

from ..models import SyncRecord
from ..stores import Store
from ..utils.payload import parse_timestamp


class Decision(str, enum.Enum):
    APPLY = "apply"
    SKIP = "skip"
    TREAT_AS_CREATE = "treat_as_create"


class ConflictGuard:
    """
    Loop and replay protection based on which store last wrote a record.

    A replayed event from the store that last wrote carries an updated_at that
    is not newer than the recorded one. An echo of our own write comes back
    from the other store with an updated_at not newer than the stamp we took
    from that store's write response. Both resolve to SKIP. Trusts each
    platform's clock.
    """

    def decide(self, record: Optional[SyncRecord], source_store: Store,
               event_updated_at, force: bool = False) -> Decision:
        if record is None:
            return Decision.TREAT_AS_CREATE
        if not record.id_for(source_store.other):
            return Decision.TREAT_AS_CREATE
        if force:
            return Decision.APPLY
        if record.last_updated_by_store is source_store and not_newer(record.updated_at, event_updated_at):
            return Decision.SKIP
        stamp = record.stamp_for(source_store)
        if stamp and not_newer(stamp, event_updated_at):
            return Decision.SKIP
        return Decision.APPLY


def not_newer(stored, incoming) -> bool:
    """True when ``incoming`` is not strictly after ``stored``; unknown incoming never counts as newer."""
    stored_ts = parse_timestamp(stored)
    incoming_ts = parse_timestamp(incoming)
    if incoming_ts is None:
        return True
    if stored_ts is None:
        return False
    return stored_ts >= incoming_ts


def latest(*values):
    """Latest of the given timestamps, keeping the original string form."""
    best, best_ts = None, None
    for v in values:
        ts = parse_timestamp(v)
        if ts is not None and (best_ts is None or ts > best_ts):
            best, best_ts = v, ts
    return best
