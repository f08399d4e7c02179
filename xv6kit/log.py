"""Write-ahead redo log that makes groups of block writes atomic."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .disk import Buf, BufferCache
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, KernelPanic, Superblock

_HEADER = struct.Struct(f"<i{LOGSIZE}i")


class Log:
    """Groups file-system writes into transactions committed through the log.

    The on-disk log is a header block holding a count and the home block
    numbers, followed by one copy of each logged block.
    """

    def __init__(self, cache: BufferCache, dev: int, sb: Superblock) -> None:
        if _HEADER.size >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self._cond = threading.Condition(threading.Lock())
        self.recover()

    def _read_head(self) -> None:
        buf = self.cache.bread(self.dev, self.start)
        try:
            n, *blocks = _HEADER.unpack_from(buf.data)
            self.blocks = list(blocks[: max(n, 0)])
        finally:
            self.cache.brelse(buf)

    def _write_head(self) -> None:
        buf = self.cache.bread(self.dev, self.start)
        try:
            fields = list(_HEADER.unpack_from(buf.data))
            fields[0] = len(self.blocks)
            fields[1 : 1 + len(self.blocks)] = self.blocks
            _HEADER.pack_into(buf.data, 0, *fields)
            self.cache.bwrite(buf)
        finally:
            self.cache.brelse(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, blockno in enumerate(self.blocks):
            logbuf = self.cache.bread(self.dev, self.start + tail + 1)
            homebuf = self.cache.bread(self.dev, blockno)
            try:
                if to_log:
                    logbuf.data[:] = homebuf.data
                    self.cache.bwrite(logbuf)
                else:
                    homebuf.data[:] = logbuf.data
                    self.cache.bwrite(homebuf)
            finally:
                self.cache.brelse(logbuf)
                self.cache.brelse(homebuf)

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._copy_blocks(to_log=False)
        self.blocks = []
        self._write_head()

    def _commit(self) -> None:
        if self.blocks:
            self._copy_blocks(to_log=True)
            self._write_head()  # the real commit point
            self._copy_blocks(to_log=False)
            self.blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start a file-system operation, waiting while the log is busy or full."""
        with self._cond:
            while (
                self.committing
                or len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits the transaction."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the enclosed block as one file-system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True