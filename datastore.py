# datastore.py
"""Live in-memory mirror of the dashboard collections.

One Firestore listener per collection replaces the cached list whenever a
new snapshot arrives. There is no cross-collection consistency: each list is
simply the last snapshot delivered for it.
"""
import logging
import threading
from functools import partial

import config
from database import to_record

logger = logging.getLogger(__name__)


class DataStore:
    def __init__(self, db, collections=config.LIST_COLLECTIONS):
        self._db = db
        self._collections = tuple(collections)
        self._lock = threading.Lock()
        self._lists = {name: [] for name in self._collections}
        self._team_performance = {}
        self._pending = set()
        self._loaded = threading.Event()
        self._watches = []

    # ---------- lifecycle ----------
    def start(self):
        if self._watches:
            return
        with self._lock:
            self._pending = set(self._collections) | {config.TEAM_PERFORMANCE}
            self._loaded.clear()
        for name in self._collections:
            self._subscribe(name, partial(self._on_list_snapshot, name))
        self._subscribe(config.TEAM_PERFORMANCE, self._on_team_snapshot)
        logger.info("Subscribed to %d collections", len(self._watches))

    def _subscribe(self, name, callback):
        try:
            watch = self._db.collection(name).on_snapshot(callback)
        except Exception:
            logger.exception("Error subscribing to %s", name)
            self._mark_loaded(name)
            return
        self._watches.append(watch)

    def stop(self):
        for watch in self._watches:
            try:
                watch.unsubscribe()
            except Exception:
                logger.exception("Error closing listener")
        self._watches = []
        with self._lock:
            self._lists = {name: [] for name in self._collections}
            self._team_performance = {}
            self._pending = set()
        self._loaded.clear()

    @property
    def running(self):
        return bool(self._watches)

    @property
    def loading(self):
        return not self._loaded.is_set()

    def wait_until_loaded(self, timeout=None):
        return self._loaded.wait(timeout)

    # ---------- snapshot callbacks ----------
    def _on_list_snapshot(self, name, docs, changes, read_time):
        try:
            items = [to_record(d) for d in docs]
        except Exception:
            logger.exception("Error reading %s snapshot", name)
        else:
            with self._lock:
                self._lists[name] = items
        finally:
            self._mark_loaded(name)

    def _on_team_snapshot(self, docs, changes, read_time):
        try:
            perf = {d.id: d.to_dict() or {} for d in docs}
        except Exception:
            logger.exception("Error reading %s snapshot", config.TEAM_PERFORMANCE)
        else:
            with self._lock:
                self._team_performance = perf
        finally:
            self._mark_loaded(config.TEAM_PERFORMANCE)

    def _mark_loaded(self, name):
        with self._lock:
            self._pending.discard(name)
            done = not self._pending
        if done:
            self._loaded.set()

    # ---------- reads ----------
    def records(self, name, agent=None):
        """Copy of the cached list, optionally only one agent's records."""
        with self._lock:
            items = list(self._lists.get(name, ()))
        if agent is None:
            return items
        field = config.agent_field(name)
        return [item for item in items if item.get(field) == agent]

    def get(self, name, doc_id):
        with self._lock:
            for item in self._lists.get(name, ()):
                if item["id"] == doc_id:
                    return dict(item)
        return None

    def team_performance(self):
        with self._lock:
            return {k: dict(v) for k, v in self._team_performance.items()}
