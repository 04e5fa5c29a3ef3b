# tracefile.py
import logging
import string

from cache import Op

logger = logging.getLogger(__name__)

MAX_ADDRESS = 0xFFFFFFFF


class TraceFormatError(ValueError):
    pass


class TraceStats:
    def __init__(self):
        self.lines = 0
        self.records = 0
        self.skipped = 0

    def as_dict(self):
        return {"lines": self.lines, "records": self.records, "skipped": self.skipped}


def parse_line(line):
    """
    Decode one "0x<hex address> <op>" record.
    Returns (address, Op), None for blank/comment lines, and raises
    TraceFormatError for anything else.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            raise TraceFormatError(f"line is not valid UTF-8: {line!r}") from None
    text = line.strip()
    if not text or text.startswith("#"):
        return None
    fields = text.split()
    if len(fields) != 2:
        raise TraceFormatError(f"expected '<address> <op>', got {text!r}")
    addr_token, op_token = fields
    if not addr_token.lower().startswith("0x"):
        raise TraceFormatError(f"address must be 0x-prefixed hex: {addr_token!r}")
    digits = addr_token[2:]
    if not digits or not all(ch in string.hexdigits for ch in digits):
        raise TraceFormatError(f"bad hex address: {addr_token!r}")
    address = int(digits, 16)
    if address > MAX_ADDRESS:
        raise TraceFormatError(f"address does not fit in 32 bits: {addr_token!r}")
    if len(op_token) != 1:
        raise TraceFormatError(f"operation must be a single character: {op_token!r}")
    return address, Op.from_char(op_token)


def iter_records(lines, stats=None, source="<trace>"):
    stats = stats if stats is not None else TraceStats()
    for lineno, line in enumerate(lines, 1):
        stats.lines += 1
        try:
            record = parse_line(line)
        except TraceFormatError as e:
            stats.skipped += 1
            logger.warning("%s:%d: skipping malformed record (%s)", source, lineno, e)
            continue
        if record is None:
            continue
        stats.records += 1
        yield record


def read_trace(path, stats=None):
    """
    Yield (address, Op) pairs from a trace file, skipping malformed lines.
    Opening the file happens on first iteration; a missing file raises
    FileNotFoundError from there.
    """
    with open(path, "rb") as f:
        yield from iter_records(f, stats, source=str(path))


def write_trace(path, records):
    count = 0
    with open(path, "w") as f:
        for address, op in records:
            f.write(f"0x{address:08x} {op.value}\n")
            count += 1
    return count
