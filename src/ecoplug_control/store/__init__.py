"""
The `store` module abstracts the shared document store the control engine
reads device and group documents from and writes decisions to.

- [`base.py`](src/ecoplug_control/store/base.py): the `DocumentStore` contract
  (fetch, merge-patch, push, subscribe) and path helpers.

- [`firebase_store.py`](src/ecoplug_control/store/firebase_store.py): the
  Firebase Realtime Database binding built on `firebase_admin.db`.

- [`memory_store.py`](src/ecoplug_control/store/memory_store.py): an
  in-process binding with the same semantics, for tests and the demo run.

- [`activity_log.py`](src/ecoplug_control/store/activity_log.py): appends a
  `device_logs` entry for every automatic control change.
"""

from ecoplug_control.store.activity_log import ActivityLog
from ecoplug_control.store.base import DocumentStore
from ecoplug_control.store.firebase_store import FirebaseStore
from ecoplug_control.store.memory_store import MemoryStore

__all__ = ["ActivityLog", "DocumentStore", "FirebaseStore", "MemoryStore"]
