import pytest

from xv6kit.disk import BufferCache, MemDisk
from xv6kit.fs import FileSystem
from xv6kit.layout import DIRSIZ, ROOTDEV, ROOTINO, FileType, Superblock
from xv6kit.log import Log
from xv6kit.ls import fmtname, ls
from xv6kit.mkfs import build_image


def make_fs(files):
    disk = MemDisk(build_image(files))
    cache = BufferCache(disk)
    log = Log(cache, ROOTDEV, Superblock.unpack(disk.read(1)))
    return FileSystem(cache, log)


@pytest.fixture
def fs():
    return make_fs({"README": b"hello", "_cat": b"meow!!"})


def parse(line):
    name = line[:DIRSIZ].strip()
    kind, ino, size = (int(x) for x in line[DIRSIZ:].split())
    return name, kind, ino, size


def test_fmtname_pads_short_names():
    assert fmtname("dir/cat") == "cat           "
    assert len(fmtname("x")) == DIRSIZ


def test_fmtname_keeps_long_names():
    assert fmtname("x/abcdefghijklmnop") == "abcdefghijklmnop"


def test_fmtname_without_slash():
    assert fmtname("README").strip() == "README"


def test_ls_root_lists_entries_in_order(fs):
    rows = [parse(line) for line in ls(fs, "/")]
    assert [r[0] for r in rows] == [".", "..", "README", "cat"]
    assert rows[0][1] == FileType.DIR
    assert rows[0][2] == ROOTINO
    assert rows[1][2] == ROOTINO


def test_ls_root_reports_file_sizes(fs):
    rows = {r[0]: r for r in (parse(line) for line in ls(fs, "/"))}
    assert rows["README"][1] == FileType.FILE
    assert rows["README"][3] == 5
    assert rows["cat"][3] == 6


def test_ls_single_file(fs):
    lines = ls(fs, "/README")
    assert len(lines) == 1
    name, kind, _, size = parse(lines[0])
    assert (name, kind, size) == ("README", FileType.FILE, 5)


def test_ls_relative_path_matches_absolute(fs):
    assert [parse(x)[0] for x in ls(fs, ".")] == [parse(x)[0] for x in ls(fs, "/")]
    assert parse(ls(fs, "README")[0])[1:] == parse(ls(fs, "/README")[0])[1:]


def test_ls_missing_path_raises(fs):
    with pytest.raises(FileNotFoundError):
        ls(fs, "/nope")


def test_ls_path_too_long(fs):
    assert ls(fs, "/" * 501) == ["ls: path too long"]


def test_ls_leaves_inode_references_balanced(fs):
    ls(fs, "/")
    ls(fs, "/README")
    ip = fs.iget(ROOTINO)
    assert ip.ref == 1
    fs.log.begin_op()
    fs.iput(ip)
    fs.log.end_op()