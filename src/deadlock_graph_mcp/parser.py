import logging
import re
from typing import Dict, List, Optional, Tuple

from .detector import find_deadlocks
from .model import (
    AwaitedLock,
    LockId,
    LockRelation,
    Report,
    ThreadEntry,
    ThreadState,
)

logger = logging.getLogger(__name__)

# Dump preamble and footer
TIMESTAMP_RE = re.compile(r'^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\s*$')
FULL_DUMP_RE = re.compile(r'^Full thread dump\b.*$')
SMR_START_RE = re.compile(r'^Threads class SMR info:\s*$')
SMR_ENTRY_RE = re.compile(
    r'^\s*(?:_java_thread_list=.*|0x[0-9a-fA-F]+(?:,\s*0x[0-9a-fA-F]+)*,?)\s*$'
)
SMR_END_RE = re.compile(r'^\s*\}\s*$')
JNI_REFS_RE = re.compile(r'^JNI global ref(?:erence)?s:.*$')
DEADLOCK_START_RE = re.compile(r'^Found (?:one|\d+) Java-level deadlocks?:\s*$')
DEADLOCK_END_RE = re.compile(r'^Found (?:one|\d+) deadlocks?\.\s*$')

# Body of the JVM deadlock report
DEADLOCK_RULE_RE = re.compile(r'^=+\s*$')
DEADLOCK_THREAD_RE = re.compile(r'^".*":\s*$')
DEADLOCK_WAIT_RE = re.compile(
    r'^\s+(?:waiting to lock monitor|waiting for ownable synchronizer)\s+\S.*$'
)
DEADLOCK_OWNER_RE = re.compile(
    r'^\s+(?:in JNI, )?which is held by (?:".*"|UNKNOWN_owner_addr=\S+)\s*$'
)
DEADLOCK_STACKS_RE = re.compile(r'^Java stack information for the threads listed above:\s*$')

# "pool-1-thread-3" #15 daemon prio=5 os_prio=0 tid=0x00007f... nid=0x1234 waiting on condition [0x...]
# Only the quoted name is required. The last quote on the line closes it.
THREAD_HEADER_RE = re.compile(r'^"(?P<name>.*)"(?P<rest>(?:\s.*)?)$')
HEADER_DECORATION_RE = re.compile(r'^(?:#\d+|daemon|\[\d+\]|[\w.]+=\S*)$')
HEADER_ADDRESS_RE = re.compile(r'\s*\[0x[0-9a-fA-F]+\]\s*$')

# Thread detail lines
THREAD_STATE_RE = re.compile(r'^\s+java\.lang\.Thread\.State:\s*(?P<state>\w*)')
STACK_FRAME_RE = re.compile(r'^\s+at\s+\S')
LOCK_LINE_RE = re.compile(
    r'^\s+-\s+(?P<verb>locked|waiting to lock|waiting to re-lock in wait\(\)|'
    r'parking to wait for|waiting on|eliminated)\s+'
    r'<(?P<token>[^>]*)>(?:\s+\((?:a\s+)?(?P<label>[^)]*)\))?'
)
OTHER_LOCK_NOTE_RE = re.compile(r'^\s+-\s+(?:locked|waiting|parking|eliminated)\b')
OWNABLE_HEADER_RE = re.compile(r'^\s+Locked ownable synchronizers:\s*$')
OWNABLE_NONE_RE = re.compile(r'^\s+-\s+None\s*$')
OWNABLE_ENTRY_RE = re.compile(r'^\s+-\s+<(?P<token>[^>]*)>(?:\s+\((?:a\s+)?(?P<label>[^)]*)\))?')
COMPILER_NOTE_RE = re.compile(r'^\s+(?:No compile task|Compiling:).*$')
CARRIER_NOTE_RE = re.compile(r'^\s+Carrying virtual thread #\d+')
BLANK_RE = re.compile(r'^\s*$')

DEADLOCK_BODY_PATTERNS = (
    BLANK_RE,
    DEADLOCK_START_RE,
    DEADLOCK_RULE_RE,
    DEADLOCK_THREAD_RE,
    DEADLOCK_WAIT_RE,
    DEADLOCK_OWNER_RE,
    DEADLOCK_STACKS_RE,
    STACK_FRAME_RE,
    LOCK_LINE_RE,
    OTHER_LOCK_NOTE_RE,
)

LOCK_TOKEN_RE = re.compile(r'^0x[0-9a-fA-F]+$')

LOCK_VERBS: Dict[str, LockRelation] = {
    "locked": LockRelation.HELD,
    "waiting to lock": LockRelation.AWAITING_ACQUIRE,
    "waiting to re-lock in wait()": LockRelation.AWAITING_ACQUIRE,
    "parking to wait for": LockRelation.AWAITING_NOTIFY,
    "waiting on": LockRelation.AWAITING_NOTIFY,
}

EXPECTED_TOP_LEVEL = "thread header, dump preamble or deadlock summary"
EXPECTED_IN_THREAD = "thread header or thread detail line (stack frame, lock or state)"
EXPECTED_SMR = "SMR thread list entry or '}'"
EXPECTED_DEADLOCK = "line of the JVM deadlock report or 'Found n deadlock(s).'"


class ParseFailure(ValueError):
    """The dump could not be parsed. Carries where and what was expected."""

    def __init__(self, offset: int, line: int, column: int, expected: str, found: str):
        self.offset = offset
        self.line = line
        self.column = column
        self.expected = expected
        self.found = found
        super().__init__(
            f"Parse error at offset {offset} (line {line}, column {column}): "
            f"expected {expected}, found '{found}'"
        )


class _ThreadBuilder:
    def __init__(self, name: str, state: ThreadState):
        self.name = name
        self.state = state
        self.held: Dict[str, LockId] = {}
        self.awaited: Dict[str, AwaitedLock] = {}

    def add(self, lock: LockId, relation: LockRelation) -> None:
        if relation is LockRelation.HELD:
            self.held.setdefault(lock.token, lock)
        else:
            self.awaited.setdefault(lock.token, AwaitedLock(lock=lock, relation=relation))

    def build(self) -> ThreadEntry:
        return ThreadEntry(
            name=self.name,
            state=self.state,
            held=tuple(self.held.values()),
            awaited=tuple(self.awaited.values()),
        )


class _DumpParser:
    def __init__(self, text: str):
        self._lines: List[Tuple[int, str]] = []
        offset = 0
        for raw in text.splitlines(keepends=True):
            self._lines.append((offset, raw.rstrip("\r\n")))
            offset += len(raw)
        self._pos = 0
        self._threads: List[ThreadEntry] = []
        self._current: Optional[_ThreadBuilder] = None

    def parse(self) -> List[ThreadEntry]:
        while self._pos < len(self._lines):
            self._parse_element()
        self._close_thread()
        return self._threads

    def _fail(self, expected: str) -> ParseFailure:
        offset, line = self._lines[self._pos]
        found = line.strip()
        if len(found) > 40:
            found = found[:40] + "..."
        return ParseFailure(offset, self._pos + 1, 1, expected, found)

    def _close_thread(self) -> None:
        if self._current is not None:
            self._threads.append(self._current.build())
            self._current = None

    def _parse_element(self) -> None:
        _, line = self._lines[self._pos]

        if BLANK_RE.match(line):
            self._pos += 1
            return

        header = THREAD_HEADER_RE.match(line)
        if header:
            self._close_thread()
            self._current = _ThreadBuilder(
                header.group("name"), _header_state(header.group("rest"))
            )
            self._pos += 1
            return

        if self._current is not None and line[:1].isspace():
            if not self._parse_detail(self._current, line):
                raise self._fail(EXPECTED_IN_THREAD)
            self._pos += 1
            return

        if TIMESTAMP_RE.match(line) or FULL_DUMP_RE.match(line) or JNI_REFS_RE.match(line):
            self._close_thread()
            self._pos += 1
        elif SMR_START_RE.match(line):
            self._close_thread()
            self._skip_smr_info()
        elif DEADLOCK_START_RE.match(line) or DEADLOCK_END_RE.match(line):
            self._close_thread()
            self._skip_deadlock_section()
        elif self._current is not None:
            raise self._fail(EXPECTED_IN_THREAD)
        else:
            raise self._fail(EXPECTED_TOP_LEVEL)

    def _parse_detail(self, thread: _ThreadBuilder, line: str) -> bool:
        state = THREAD_STATE_RE.match(line)
        if state:
            thread.state = ThreadState.parse(state.group("state"))
            return True
        if STACK_FRAME_RE.match(line):
            return True

        lock_line = LOCK_LINE_RE.match(line)
        if lock_line:
            relation = LOCK_VERBS.get(lock_line.group("verb"))
            lock = _lock_id(lock_line.group("token"), lock_line.group("label"))
            if relation is not None and lock is not None:
                thread.add(lock, relation)
            return True

        if OWNABLE_NONE_RE.match(line):
            return True
        ownable = OWNABLE_ENTRY_RE.match(line)
        if ownable:
            lock = _lock_id(ownable.group("token"), ownable.group("label"))
            if lock is not None:
                thread.add(lock, LockRelation.HELD)
            return True

        return bool(
            OTHER_LOCK_NOTE_RE.match(line)
            or OWNABLE_HEADER_RE.match(line)
            or COMPILER_NOTE_RE.match(line)
            or CARRIER_NOTE_RE.match(line)
        )

    def _skip_smr_info(self) -> None:
        self._pos += 1
        while self._pos < len(self._lines):
            _, line = self._lines[self._pos]
            if SMR_END_RE.match(line):
                self._pos += 1
                return
            if not SMR_ENTRY_RE.match(line):
                raise self._fail(EXPECTED_SMR)
            self._pos += 1

    def _skip_deadlock_section(self) -> None:
        # The JVM's own report is skipped: cycles are recomputed from the threads.
        _, line = self._lines[self._pos]
        self._pos += 1
        if DEADLOCK_END_RE.match(line):
            return
        while self._pos < len(self._lines):
            _, line = self._lines[self._pos]
            if DEADLOCK_END_RE.match(line):
                self._pos += 1
                return
            if not any(pattern.match(line) for pattern in DEADLOCK_BODY_PATTERNS):
                raise self._fail(EXPECTED_DEADLOCK)
            self._pos += 1


def _header_state(rest: str) -> ThreadState:
    rest = HEADER_ADDRESS_RE.sub("", rest)
    words = rest.split()
    while words and HEADER_DECORATION_RE.match(words[0]):
        words.pop(0)
    return ThreadState.from_description(" ".join(words))


def _lock_id(token: str, label: Optional[str]) -> Optional[LockId]:
    token = token.strip()
    if not LOCK_TOKEN_RE.match(token):
        # e.g. "<no object reference available>", "<owner is scalar replaced>"
        return None
    return LockId(token=token.lower(), label=(label or "").strip())


def parse_thread_dump(text: str) -> Report:
    """Parse the output of ``jstack [-l] <pid>`` into a Report.

    Raises ParseFailure at the first line that fits no part of the dump
    grammar. Stack frames are recognized and dropped.
    """
    threads = _DumpParser(text).parse()
    deadlocks = find_deadlocks(threads)
    logger.debug(
        "Parsed %d threads, %d held locks, %d deadlock edges",
        len(threads),
        sum(len(t.held) for t in threads),
        len(deadlocks),
    )
    return Report(threads=tuple(threads), deadlock_elements=tuple(deadlocks))
