import pytest

from xv6kit.layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    NDIRECT,
    Dinode,
    Dirent,
    FileType,
    KernelPanic,
    Stat,
    Superblock,
    bblock,
    iblock,
)


def _sb():
    return Superblock(1000, 941, 200, 30, 2, 32, 58)


def test_superblock_round_trip():
    sb = _sb()
    assert Superblock.unpack(sb.pack()) == sb


def test_superblock_unpack_from_full_block():
    sb = _sb()
    block = sb.pack().ljust(BSIZE, b"\0")
    assert Superblock.unpack(block) == sb


def test_superblock_is_little_endian():
    data = Superblock(size=1).pack()
    assert data[:4] == b"\x01\x00\x00\x00"


def test_superblock_short_data():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\0" * 4)


def test_dinode_round_trip():
    addrs = list(range(1, NDIRECT + 2))
    din = Dinode(int(FileType.FILE), 0, 0, 1, 1234, addrs)
    assert Dinode.unpack(din.pack()) == din


def test_dinode_fits_block_evenly():
    assert BSIZE % len(Dinode().pack()) == 0
    assert IPB * len(Dinode().pack()) == BSIZE


def test_dinode_wrong_addrs():
    with pytest.raises(ValueError):
        Dinode(addrs=[0, 0]).pack()


def test_dinode_short_data():
    with pytest.raises(ValueError):
        Dinode.unpack(b"\0" * 10)


def test_dirent_round_trip():
    de = Dirent(7, "README")
    packed = de.pack()
    assert len(packed) == 2 + DIRSIZ
    assert BSIZE % len(packed) == 0
    assert Dirent.unpack(packed) == de


def test_dirent_truncates_long_name():
    name = "abcdefghijklmnopqrstuvwxyz"
    de = Dirent.unpack(Dirent(3, name).pack())
    assert de.name == name[:DIRSIZ]


def test_iblock_and_bblock():
    sb = _sb()
    assert iblock(0, sb) == sb.inodestart
    assert iblock(IPB - 1, sb) == sb.inodestart
    assert iblock(IPB, sb) == sb.inodestart + 1
    assert bblock(0, sb) == sb.bmapstart
    assert bblock(BPB, sb) == sb.bmapstart + 1


def test_dinode_packs_to_64_bytes():
    assert len(Dinode().pack()) == 64


def test_file_type_values():
    assert FileType(1) is FileType.DIR
    assert FileType(3) is FileType.DEV


def test_stat_fields():
    st = Stat(int(FileType.FILE), 1, 5, 1, 99)
    assert (st.ino, st.size) == (5, 99)


def test_kernel_panic_carries_message():
    err = KernelPanic("bad")
    assert str(err) == "bad"
    assert err.args == ("bad",)