from __future__ import annotations

import struct
import sys
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from classpy.core.errors import InvalidConstantReference, UnsupportedConstantTag
from classpy.parsers.classfile import decode_class
from classpy.parsers.constant_pool import ConstantEntry, ConstantPool, ConstantTag

from builders import ClassBuilder


def _pool_with_long() -> ConstantPool:
    pool = ConstantPool()
    pool.append(ConstantEntry(ConstantTag.UTF8, 10, value="Foo"))          # 1
    pool.append(ConstantEntry(ConstantTag.CLASS, 20, refs=((1, 21),)))      # 2
    pool.append(ConstantEntry(ConstantTag.LONG, 30, value=7))              # 3
    pool.append_hole()                                                      # 4
    pool.append(ConstantEntry(ConstantTag.STRING, 40, refs=((1, 41),)))     # 5
    return pool


def test_long_takes_two_slots() -> None:
    pool = _pool_with_long()
    assert pool.limit == 6
    assert 4 not in pool
    assert [i for i, _ in pool] == [1, 2, 3, 5]
    with pytest.raises(InvalidConstantReference):
        pool.get(4)


def test_out_of_range_and_zero_index() -> None:
    pool = _pool_with_long()
    for bad in (0, 6, 100):
        with pytest.raises(InvalidConstantReference):
            pool.get(bad)


def test_wrong_kind() -> None:
    pool = _pool_with_long()
    with pytest.raises(InvalidConstantReference) as info:
        pool.get(1, ConstantTag.CLASS, offset=99)
    assert info.value.offset == 99
    assert info.value.actual == "UTF8"


def test_descriptions() -> None:
    pool = _pool_with_long()
    assert pool.describe_entry(2) == "Class Foo"
    assert pool.describe(3) == "7"
    assert pool.describe_ref(5) == "#5 -> Foo"
    assert pool.describe_ref(0) == "#0 (none)"


def test_member_ref_description() -> None:
    pool = ConstantPool()
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="java/lang/Object"))  # 1
    pool.append(ConstantEntry(ConstantTag.CLASS, 0, refs=((1, 0),)))          # 2
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="<init>"))            # 3
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="()V"))               # 4
    pool.append(ConstantEntry(ConstantTag.NAME_AND_TYPE, 0, refs=((3, 0), (4, 0))))  # 5
    pool.append(ConstantEntry(ConstantTag.METHODREF, 0, refs=((2, 0), (5, 0))))      # 6
    pool.validate()
    assert pool.describe(6) == "java/lang/Object.<init>:()V"


def _method_handle_pool() -> ConstantPool:
    pool = ConstantPool()
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="java/lang/Object"))  # 1
    pool.append(ConstantEntry(ConstantTag.CLASS, 0, refs=((1, 0),)))          # 2
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="<init>"))            # 3
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="()V"))               # 4
    pool.append(ConstantEntry(ConstantTag.NAME_AND_TYPE, 0, refs=((3, 0), (4, 0))))  # 5
    pool.append(ConstantEntry(ConstantTag.METHODREF, 0, refs=((2, 0), (5, 0))))      # 6
    pool.append(ConstantEntry(ConstantTag.METHOD_HANDLE, 0, refs=((6, 0),), value=8))  # 7
    pool.validate()
    return pool


def test_concurrent_describe_of_same_entry() -> None:
    expected = "REF_newInvokeSpecial java/lang/Object.<init>:()V"
    workers = 8
    interval = sys.getswitchinterval()
    sys.setswitchinterval(1e-6)
    try:
        with ThreadPoolExecutor(max_workers=workers) as pool_exec:
            for _ in range(100):
                pool = _method_handle_pool()
                barrier = threading.Barrier(workers)

                def describe(p: ConstantPool = pool, b: threading.Barrier = barrier) -> str:
                    b.wait()
                    return p.describe(7)

                futures = [pool_exec.submit(describe) for _ in range(workers)]
                assert [f.result() for f in futures] == [expected] * workers
    finally:
        sys.setswitchinterval(interval)


def test_reference_cycle_is_reported() -> None:
    pool = ConstantPool()
    pool.append(ConstantEntry(ConstantTag.INVOKE_DYNAMIC, 0, refs=((2, 0),), value=0))
    pool.append(ConstantEntry(ConstantTag.METHOD_HANDLE, 0, refs=((1, 0),), value=6))
    with pytest.raises(InvalidConstantReference):
        pool.describe(1)


def test_description_limit() -> None:
    pool = ConstantPool(description_limit=5)
    pool.append(ConstantEntry(ConstantTag.UTF8, 0, value="abcdefghij"))
    assert pool.describe(1) == "abcde..."


def test_decoded_pool_skips_hole_after_long() -> None:
    cb = ClassBuilder()
    cb.class_("Hello")            # 1, 2
    assert cb.long(1 << 40) == 3  # 3, 4
    data = cb.build()             # Object at 5, 6
    pool = decode_class(data)["constant_pool"]
    names = [entry.name for entry in pool]
    assert names == [
        "constant_pool[1]", "constant_pool[2]", "constant_pool[3]",
        "constant_pool[5]", "constant_pool[6]",
    ]
    assert pool["constant_pool[3]"].description == "Long 1099511627776"
    assert pool["constant_pool[3]"].length == 9


def test_reference_into_hole_is_rejected() -> None:
    cb = ClassBuilder()
    cb.long(1)                                   # 1, 2
    cb.raw_entry(struct.pack(">BH", 8, 2))       # String -> hole
    with pytest.raises(InvalidConstantReference):
        decode_class(cb.build())


def test_forward_reference_resolves() -> None:
    cb = ClassBuilder()
    cb.raw_entry(struct.pack(">BH", 8, 2))       # String -> #2, not yet read
    cb.utf8("later")
    root = decode_class(cb.build())
    assert root["constant_pool"]["constant_pool[1]"].description == "String later"


def test_unknown_tag_is_fatal() -> None:
    cb = ClassBuilder()
    cb.raw_entry(b"\x02\x00\x00")
    with pytest.raises(UnsupportedConstantTag) as info:
        decode_class(cb.build())
    assert info.value.offset == 10
    assert info.value.actual == 2
