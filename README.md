# xv6kit

A pure-Python model of the storage and console layers of a small Unix-like
teaching kernel. It reads and writes that kernel's on-disk file system
format: 512-byte blocks, a superblock in block 1, a redo log, inode blocks,
a free-block bitmap and data blocks.

## What is inside

- `xv6kit.layout`: on-disk records `Superblock`, `Dinode` and `Dirent`
  (each with `pack()` and `unpack()`), sizing constants such as `BSIZE`,
  `NDIRECT` and `FSSIZE`, the `iblock()` and `bblock()` helpers, `FileType`,
  `Stat`, and the `KernelPanic` exception raised on internal inconsistencies.
- `xv6kit.disk`: `MemDisk`, an in-memory block device, and `BufferCache`, a
  most-recently-used list of block buffers (`bread`, `bwrite`, `brelse`).
- `xv6kit.log`: `Log`, a redo log that makes groups of block writes atomic.
  It replays a committed transaction when created; wrap updates in
  `with log.transaction(): ...` (or `begin_op()` / `end_op()`).
- `xv6kit.fs`: `FileSystem` with the inode cache (`iget`, `ilock`, `iput`, ...),
  file contents (`readi`, `writei`), directories (`dirlookup`, `dirlink`) and
  path lookup (`namei`, `nameiparent`), plus `skipelem()` and `namecmp()`.
- `xv6kit.file`: `FileTable`, `File` and `Pipe` for open files and pipes.
- `xv6kit.mkfs`: `ImageBuilder` and `build_image()` to create images, and the
  `xv6-mkfs` command.
- `xv6kit.kalloc`: `PageAllocator`, a free-list allocator of 4096-byte page
  addresses.
- `xv6kit.kbd`: `KeyboardDecoder`, which turns PC scan codes into characters
  while tracking Shift, Ctrl and Caps Lock.
- `xv6kit.console`: `Console`, a line-edited input buffer with echo
  (backspace, Ctrl-U, Ctrl-D, Ctrl-P callback), and `CgaScreen`, a model of
  an 80x25 text screen.
- `xv6kit.fmt`: `format_int()`, `user_format()` and `kernel_format()`, the
  small `%d %x %p %s` (and `%c` for `user_format`) formatters.
- `xv6kit.grep` and `xv6kit.ls`: `match()` / `grep()` supporting `^ . * $`,
  with the `xv6-grep` command, and the `ls()` listing function.

## Installing

```
pip install .
```

## Building an image

```
xv6-mkfs fs.img README _cat _ls
```

The first argument is the image to create (1000 blocks). The files after it
are stored in the root directory; a leading `_` is dropped from each name,
and names may not contain `/`. From Python:

```python
from xv6kit.mkfs import build_image

image = build_image({"hello.txt": b"hello, world\n"})
```

## Reading an image

```python
from xv6kit.disk import MemDisk, BufferCache
from xv6kit.layout import Superblock
from xv6kit.log import Log
from xv6kit.fs import FileSystem
from xv6kit.ls import ls

disk = MemDisk(image)
cache = BufferCache(disk, 30)
buf = cache.bread(1, 1)
sb = Superblock.unpack(buf.data)
cache.brelse(buf)

log = Log(cache, 1, sb)
fs = FileSystem(cache, log, 1)
for line in ls(fs, "/"):
    print(line)
```

Each line of `ls` gives the blank-padded name, the type number, the inode
number and the size. `bytes(disk)` gives the image back after changes.

## grep

```
xv6-grep 'ab*c$' notes.txt
```

With no files, standard input is searched. Matching lines are written to
standard output unchanged; a last line with no terminating newline is not
reported.

## What it does not do

There are no processes, scheduler, system calls or virtual memory, and
nothing here boots or runs programs. `ls` is a library function only; there
is no `ls` command. The console works on characters handed to it in Python
and does not drive a real terminal.

## Tests

```
pip install .[test]
pytest
```