"""Build a file-system image holding a root directory and some files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable, Mapping

from .layout import (
    BSIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dinode,
    Dirent,
    FileType,
    Superblock,
    iblock,
)

NINODES = 200
NBITMAP = FSSIZE // (BSIZE * 8) + 1
NINODEBLOCKS = NINODES // IPB + 1
NLOG = LOGSIZE
NMETA = 2 + NLOG + NINODEBLOCKS + NBITMAP
NBLOCKS = FSSIZE - NMETA

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: superblock, root directory, then appended files."""

    def __init__(self) -> None:
        self.image = bytearray(FSSIZE * BSIZE)
        self.sb = Superblock(
            size=FSSIZE,
            nblocks=NBLOCKS,
            ninodes=NINODES,
            nlog=NLOG,
            logstart=2,
            inodestart=2 + NLOG,
            bmapstart=2 + NLOG + NINODEBLOCKS,
        )
        self.freeinode = 1
        self.freeblock = NMETA
        self._finished = False
        self._wsect(1, self.sb.pack().ljust(BSIZE, b"\0"))

        self.rootino = self.ialloc(FileType.DIR)
        if self.rootino != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    def _span(self, sec: int) -> slice:
        return slice(sec * BSIZE, (sec + 1) * BSIZE)

    def _rsect(self, sec: int) -> bytearray:
        return bytearray(self.image[self._span(sec)])

    def _wsect(self, sec: int, data: bytes | bytearray) -> None:
        self.image[self._span(sec)] = data

    def _inode_slot(self, inum: int) -> tuple[int, int]:
        offset = (inum % IPB) * Dinode.SIZE
        return iblock(inum, self.sb), offset

    def _rinode(self, inum: int) -> Dinode:
        bn, offset = self._inode_slot(inum)
        return Dinode.unpack(self._rsect(bn)[offset : offset + Dinode.SIZE])

    def _winode(self, inum: int, din: Dinode) -> None:
        bn, offset = self._inode_slot(inum)
        block = self._rsect(bn)
        block[offset : offset + Dinode.SIZE] = din.pack()
        self._wsect(bn, block)

    def _take_block(self) -> int:
        if self.freeblock >= FSSIZE:
            raise ValueError("image is out of data blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with the given type; returns its number."""
        if self.freeinode >= NINODES:
            raise ValueError("image is out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, Dinode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes | bytearray) -> None:
        """Append ``data`` to the end of inode ``inum``, allocating blocks."""
        din = self._rinode(inum)
        off = din.size
        view = memoryview(bytes(data))
        pos = 0
        while pos < len(view):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large for the image format")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                target = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._take_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._take_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                target = indirect[fbn - NDIRECT]
            n1 = min(len(view) - pos, (fbn + 1) * BSIZE - off)
            start = off - fbn * BSIZE
            block = self._rsect(target)
            block[start : start + n1] = view[pos : pos + n1]
            self._wsect(target, block)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes | bytearray) -> int:
        """Add a file to the root directory; a leading '_' is dropped from the name."""
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.rootino, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory up to whole blocks, write the bitmap, return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        self._finished = True

        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BSIZE * 8:
            raise ValueError("used blocks do not fit in one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bitmap)
        return bytes(self.image)


def build_image(files: Mapping[str, bytes] | Iterable[tuple[str, bytes]]) -> bytes:
    """Build a complete image holding ``files`` in its root directory."""
    builder = ImageBuilder()
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, paths = args[0], args[1:]

    builder = ImageBuilder()
    print(
        f"nmeta {NMETA} (boot, super, log blocks {NLOG} inode blocks {NINODEBLOCKS}, "
        f"bitmap blocks {NBITMAP}) blocks {NBLOCKS} total {FSSIZE}"
    )
    for path in paths:
        try:
            with open(path, "rb") as handle:
                data = handle.read()
        except OSError as err:
            print(f"{path}: {err.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except ValueError as err:
            print(f"mkfs: {err}", file=sys.stderr)
            return 1

    used = builder.freeblock
    image = builder.finish()
    print(f"balloc: first {used} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        with open(image_path, "wb") as out:
            out.write(image)
    except OSError as err:
        print(f"{image_path}: {err.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())