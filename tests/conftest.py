from pathlib import Path
from typing import Callable, Iterable, Sequence, Tuple

import pytest

BASE_DIR = Path(__file__).parent


@pytest.fixture
def sample_dump() -> str:
    """jstack -l output from JDK 17 with a two-thread deadlock."""
    return (BASE_DIR / "sample_thread_dump.txt").read_text(encoding="utf-8")


@pytest.fixture
def sample_dump_2() -> str:
    """jstack output from JDK 8, one blocked thread and no deadlock."""
    return (BASE_DIR / "sample_thread_dump_2.txt").read_text(encoding="utf-8")


@pytest.fixture
def three_cycle_dump() -> str:
    """A holds L1 and waits for L2 (B), B holds L2 and waits for L3 (C), C holds L3 and waits for L1."""
    return '''"A" #10 prio=5 os_prio=0 tid=0x00007f0000000a01 nid=0xa01 waiting for monitor entry  [0x00007f00a0000000]
   java.lang.Thread.State: BLOCKED (on object monitor)
\tat com.example.Cycle.a(Cycle.java:10)
\t- waiting to lock <0x00000000000000b2> (a com.example.L2)
\t- locked <0x00000000000000b1> (a com.example.L1)

"B" #11 prio=5 os_prio=0 tid=0x00007f0000000a02 nid=0xa02 waiting for monitor entry  [0x00007f00a0001000]
   java.lang.Thread.State: BLOCKED (on object monitor)
\tat com.example.Cycle.b(Cycle.java:20)
\t- waiting to lock <0x00000000000000b3> (a com.example.L3)
\t- locked <0x00000000000000b2> (a com.example.L2)

"C" #12 prio=5 os_prio=0 tid=0x00007f0000000a03 nid=0xa03 waiting for monitor entry  [0x00007f00a0002000]
   java.lang.Thread.State: BLOCKED (on object monitor)
\tat com.example.Cycle.c(Cycle.java:30)
\t- waiting to lock <0x00000000000000b1> (a com.example.L1)
\t- locked <0x00000000000000b3> (a com.example.L3)
'''


ThreadSpec = Tuple[str, Sequence[str], Sequence[str]]


def _thread_block(name: str, holds: Iterable[str], awaits: Iterable[str]) -> str:
    awaits = list(awaits)
    state = "BLOCKED (on object monitor)" if awaits else "RUNNABLE"
    descriptor = "waiting for monitor entry" if awaits else "runnable"
    lines = [
        f'"{name}" #1 prio=5 os_prio=0 tid=0x00007f0000001000 nid=0x1000 {descriptor}',
        f"   java.lang.Thread.State: {state}",
        "\tat com.example.Work.run(Work.java:1)",
    ]
    lines += [f"\t- waiting to lock <{token}> (a java.lang.Object)" for token in awaits]
    lines += [f"\t- locked <{token}> (a java.lang.Object)" for token in holds]
    return "\n".join(lines) + "\n"


@pytest.fixture
def build_dump() -> Callable[[Sequence[ThreadSpec]], str]:
    """Builds a dump from (name, held tokens, awaited tokens) triples."""

    def build(threads: Sequence[ThreadSpec]) -> str:
        return "\n".join(_thread_block(*spec) for spec in threads)

    return build


def lock(n: int) -> str:
    return f"0x{n:016x}"


@pytest.fixture
def cycle_of() -> Callable[[int], list]:
    """k threads T0..Tk-1, Ti holds lock i and waits for lock i+1 (mod k)."""

    def make(k: int) -> list:
        return [(f"T{i}", [lock(i)], [lock((i + 1) % k)]) for i in range(k)]

    return make
