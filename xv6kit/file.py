"""Open files: pipes, inode-backed files and the system-wide file table."""

from __future__ import annotations

import errno
import threading
from dataclasses import dataclass
from enum import Enum

from .fs import FileSystem, Inode
from .layout import BSIZE, MAXOPBLOCKS, NFILE, KernelPanic, Stat

PIPESIZE = 512

# Write a few blocks at a time so one operation stays within the log:
# inode, indirect block, allocation blocks and two blocks of slop.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class Pipe:
    """A bounded byte channel with one reading and one writing end."""

    def __init__(self) -> None:
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition(threading.Lock())

    def write(self, data: bytes | bytearray) -> int:
        """Write all of ``data``, blocking while the pipe is full.

        Raises BrokenPipeError if the pipe fills up with no reader left.
        """
        raw = bytes(data)
        with self._cond:
            for b in raw:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError(errno.EPIPE, "pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = b
                self.nwrite += 1
            self._cond.notify_all()
        return len(raw)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; blocks while empty and a writer remains."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            count = min(max(n, 0), self.nwrite - self.nread)
            out = bytes(self._data[(self.nread + i) % PIPESIZE] for i in range(count))
            self.nread += count
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the writing end if ``writable``, otherwise the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()


class FileKind(Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """An entry in the open file table."""

    type: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """Fixed-size table of open files shared by the whole system."""

    def __init__(self, fs: FileSystem, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self.files = [File() for _ in range(nfile)]

    def alloc(self) -> File:
        """Take a free table entry with one reference."""
        with self._lock:
            for f in self.files:
                if f.ref == 0:
                    f.ref = 1
                    f.readable = False
                    f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    return f
        raise OSError(errno.ENFILE, "file table overflow")

    def dup(self, f: File) -> File:
        """Take another reference to ``f``."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
            f.type = FileKind.NONE
            f.pipe = None
            f.ip = None
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            with self.fs.log.transaction():
                self.fs.iput(ip)

    def stat(self, f: File) -> Stat:
        """Metadata of an inode-backed file."""
        if f.type is not FileKind.INODE or f.ip is None:
            raise OSError(errno.EINVAL, "file has no inode")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f``, advancing its offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.type is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.type is FileKind.INODE and f.ip is not None:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: File, data: bytes | bytearray) -> int:
        """Write all of ``data`` to ``f``; returns the number of bytes written."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        raw = bytes(data)
        if f.type is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(raw)
        if f.type is FileKind.INODE and f.ip is not None:
            done = 0
            while done < len(raw):
                chunk = raw[done : done + _MAX_WRITE]
                with self.fs.log.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        r = self.fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        self.fs.iunlock(f.ip)
                if r != len(chunk):
                    raise KernelPanic("short filewrite")
                done += r
            return len(raw)
        raise KernelPanic("filewrite")

    def pipe(self) -> tuple[File, File]:
        """Create a pipe; returns its reading and writing files."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        p = Pipe()
        rf.type, rf.readable, rf.writable, rf.pipe = FileKind.PIPE, True, False, p
        wf.type, wf.readable, wf.writable, wf.pipe = FileKind.PIPE, False, True, p
        return rf, wf