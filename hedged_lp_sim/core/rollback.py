#!/usr/bin/env python3
"""
Rollback Log

Explicit compensation log giving all-or-nothing units of work on top of
plain in-process state. Components that mutate state record an undo
closure while a unit is open; when the unit fails, its closures run in
reverse order and the error propagates unchanged.

Units nest: a successful inner unit folds its entries into the enclosing
one, so a later failure of the outer unit still undoes the inner work.
Every unit holds the log's re-entrant lock for its whole duration, so units
on one log run strictly one after another. Components wrap each public
mutation with @journaled, which makes it a unit of its own: a mutation
from another thread waits until the running unit has committed or rolled
back.
"""

import functools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class UndoEntry:
    description: str
    undo: Callable[[], None]


class RollbackLog:
    """Write-ahead undo log shared by all components of one deployment"""

    def __init__(self):
        self._lock = threading.RLock()
        self._units: List[List[UndoEntry]] = []
        self._labels: List[str] = []
        self._owner: Optional[int] = None

    @property
    def in_unit(self) -> bool:
        return bool(self._units) and self._owner == threading.get_ident()

    @property
    def depth(self) -> int:
        return len(self._units) if self._owner == threading.get_ident() else 0

    def record(self, description: str, undo: Callable[[], None]) -> None:
        """Register an undo closure; mutations outside a unit are final"""
        if self._units and self._owner == threading.get_ident():
            self._units[-1].append(UndoEntry(description, undo))

    @contextmanager
    def atomic(self, label: str = "unit") -> Iterator["RollbackLog"]:
        with self._lock:
            if not self._units:
                self._owner = threading.get_ident()
            self._units.append([])
            self._labels.append(label)
            try:
                yield self
            except BaseException as exc:
                entries = self._units.pop()
                self._labels.pop()
                if entries:
                    logger.info("Rolling back %s (%d steps): %s", label, len(entries), exc)
                for entry in reversed(entries):
                    logger.debug("Undo: %s", entry.description)
                    entry.undo()
                raise
            else:
                entries = self._units.pop()
                self._labels.pop()
                if self._units:
                    self._units[-1].extend(entries)
            finally:
                if not self._units:
                    self._owner = None


def journaled(method):
    """Run a state-changing method as its own unit on the instance's rollback log"""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.rollback.atomic(method.__name__):
            return method(self, *args, **kwargs)
    return wrapper
