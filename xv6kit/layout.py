"""On-disk file system layout, kernel parameters and shared record types."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar

# Kernel parameters.
NPROC = 64
KSTACKSIZE = 4096
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

# On-disk format.
ROOTINO = 1
BSIZE = 512
UINT_SIZE = 4
NDIRECT = 12
NINDIRECT = BSIZE // UINT_SIZE
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14
BPB = BSIZE * 8

UINT_MASK = 0xFFFFFFFF


class KernelPanic(RuntimeError):
    """An unrecoverable inconsistency detected by kernel code."""


class FileType(IntEnum):
    """Inode types."""

    DIR = 1
    FILE = 2
    DEV = 3


@dataclass
class Stat:
    """File metadata as reported by fstat."""

    type: int
    dev: int
    ino: int
    nlink: int
    size: int


@dataclass
class Superblock:
    """Describes the disk layout."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<7I")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        return self._STRUCT.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        if len(data) < cls.SIZE:
            raise ValueError(f"superblock needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*cls._STRUCT.unpack_from(data))


def _zero_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass
class Dinode:
    """On-disk inode."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_zero_addrs)

    _STRUCT: ClassVar[struct.Struct] = struct.Struct(f"<4hI{NDIRECT + 1}I")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"inode needs {NDIRECT + 1} block addresses")
        return self._STRUCT.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Dinode":
        if len(data) < cls.SIZE:
            raise ValueError(f"inode needs {cls.SIZE} bytes, got {len(data)}")
        type_, major, minor, nlink, size, *addrs = cls._STRUCT.unpack_from(data)
        return cls(type_, major, minor, nlink, size, list(addrs))


IPB = BSIZE // Dinode.SIZE


@dataclass
class Dirent:
    """Directory entry: an inode number and a name of up to DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    _STRUCT: ClassVar[struct.Struct] = struct.Struct(f"<H{DIRSIZ}s")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        raw = self.name.encode("latin-1")[:DIRSIZ]
        return self._STRUCT.pack(self.inum, raw)

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        if len(data) < cls.SIZE:
            raise ValueError(f"dirent needs {cls.SIZE} bytes, got {len(data)}")
        inum, raw = cls._STRUCT.unpack_from(data)
        return cls(inum, raw.split(b"\0", 1)[0].decode("latin-1"))


def iblock(inum: int, sb: Superblock) -> int:
    """Block holding inode ``inum``."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: Superblock) -> int:
    """Bitmap block holding the bit for block ``b``."""
    return b // BPB + sb.bmapstart