import threading
import weakref
from contextlib import contextmanager
from typing import Iterator

from trivia import db
from trivia.errors import RoomNotFound
from trivia.models import Room


_registry_lock = threading.Lock()
# Entries disappear once no caller holds the room's lock
_room_locks: "weakref.WeakValueDictionary[int, threading.RLock]" = weakref.WeakValueDictionary()


def _lock_for(room_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _room_locks.get(room_id)
        if lock is None:
            lock = _room_locks[room_id] = threading.RLock()
        return lock


@contextmanager
def locked_room(room_id: int) -> Iterator[Room]:
    """Serialize read-decide-write sequences on one room.

    Holds a per-room re-entrant lock for this process and re-reads the room
    row with ``SELECT ... FOR UPDATE`` so other workers sharing the database
    queue behind us. Anything the block leaves uncommitted is rolled back
    if it raises.
    """
    with _lock_for(room_id):
        room = (
            Room.query.filter_by(id=room_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if not room:
            raise RoomNotFound()
        try:
            yield room
        except Exception:
            db.session.rollback()
            raise
