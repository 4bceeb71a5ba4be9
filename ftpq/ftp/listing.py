"""Directory listing decoders for ftpq.

LIST output is not standardised. Each parser below recognises one
family of formats; parse_list_line() tries them in a fixed order.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ftpq.ftp.exceptions import FTPProtocolFormatError


class EntryType(Enum):
    """Kind of a directory entry."""
    FILE = "file"
    FOLDER = "folder"
    LINK = "link"


@dataclass(frozen=True)
class DirectoryEntry:
    """One decoded line of a LIST reply."""
    entry_type: EntryType
    name: str
    size: int = 0
    time: Optional[datetime] = None

    @property
    def is_dir(self) -> bool:
        """True for folders."""
        return self.entry_type == EntryType.FOLDER


class UnsupportedListLine(FTPProtocolFormatError):
    """The line is not in the format handled by this parser."""

    def __init__(self, line: str):
        super().__init__("LIST", line)


def _parse_size(value: str, line: str) -> int:
    try:
        size = int(value)
    except ValueError:
        raise FTPProtocolFormatError("LIST size", line)
    if size < 0:
        raise FTPProtocolFormatError("LIST size", line)
    return size


def _parse_ls_time(fields: Sequence[str], line: str, now: Optional[datetime] = None) -> datetime:
    """Parse 'Jan 2 15:04' (within the last year) or 'Jan 2 2006'."""
    month, day, year_or_clock = fields
    try:
        if ":" not in year_or_clock:
            return datetime.strptime(f"{month} {day} {year_or_clock}", "%b %d %Y")

        now = now or datetime.now()
        stamp = datetime.strptime(f"{month} {day} {now.year} {year_or_clock}", "%b %d %Y %H:%M")
        if stamp > now:
            # ls omits the year for the last six months, which may span new year
            stamp = datetime.strptime(
                f"{month} {day} {now.year - 1} {year_or_clock}", "%b %d %Y %H:%M"
            )
        return stamp
    except ValueError:
        raise FTPProtocolFormatError("LIST time", line)


class ListLineParser(ABC):
    """Base class for LIST line parsers.

    parse() returns a DirectoryEntry, raises UnsupportedListLine when the
    line belongs to another format, and raises FTPProtocolFormatError when
    the line is in this format but invalid.
    """

    name = "base"

    @abstractmethod
    def parse(self, line: str) -> DirectoryEntry:
        """Decode one line."""


class FactsListParser(ListLineParser):
    """RFC 3659 machine listing: 'type=file;size=12;modify=20200101120000; name'."""

    name = "rfc3659"

    def parse(self, line: str) -> DirectoryEntry:
        semicolon = line.find(";")
        space = line.find(" ")
        if semicolon < 0 or space < 0 or semicolon > space:
            raise UnsupportedListLine(line)

        entry_type = EntryType.FILE
        size = 0
        stamp = None

        for fact in line[:space].rstrip(";").split(";"):
            key, sep, value = fact.partition("=")
            if not sep or not key:
                raise UnsupportedListLine(line)

            key = key.lower()
            if key == "modify":
                try:
                    stamp = datetime.strptime(value.split(".")[0], "%Y%m%d%H%M%S")
                except ValueError:
                    raise FTPProtocolFormatError("LIST modify fact", line)
            elif key == "type":
                value = value.lower()
                if value in ("dir", "cdir", "pdir"):
                    entry_type = EntryType.FOLDER
                elif value == "file":
                    entry_type = EntryType.FILE
                elif value.startswith("os.unix=symlink") or value.startswith("os.unix=slink"):
                    entry_type = EntryType.LINK
            elif key == "size":
                size = _parse_size(value, line)

        return DirectoryEntry(entry_type, line[space + 1:], size, stamp)


class UnixListParser(ListLineParser):
    """Output of 'ls -l', plus two variants seen on embedded servers."""

    name = "unix"

    def parse(self, line: str) -> DirectoryEntry:
        fields = line.split()

        # "drwxr-xr-x folder 0 Jan 2 15:04 name"
        if len(fields) >= 7 and fields[1] == "folder" and fields[2] == "0":
            return DirectoryEntry(
                EntryType.FOLDER,
                " ".join(fields[6:]),
                time=_parse_ls_time(fields[3:6], line),
            )

        # "-rw-r--r-- 0 1234 1234 Jan 2 15:04 name"
        if len(fields) >= 8 and fields[1] == "0":
            return DirectoryEntry(
                EntryType.FILE,
                " ".join(fields[7:]),
                size=_parse_size(fields[2], line),
                time=_parse_ls_time(fields[4:7], line),
            )

        if len(fields) < 9:
            raise UnsupportedListLine(line)

        kind = fields[0][0]
        size = 0
        if kind == "-":
            entry_type = EntryType.FILE
            size = _parse_size(fields[4], line)
        elif kind == "d":
            entry_type = EntryType.FOLDER
        elif kind == "l":
            entry_type = EntryType.LINK
        else:
            raise FTPProtocolFormatError("LIST entry type", line)

        return DirectoryEntry(
            entry_type,
            " ".join(fields[8:]),
            size=size,
            time=_parse_ls_time(fields[5:8], line),
        )


class DosListParser(ListLineParser):
    """Output of the MS-DOS DIR command: '01-02-06  03:04PM  <DIR>  name'."""

    name = "dos"

    # (strptime format, length of the text it consumes)
    TIME_FORMATS: Tuple[Tuple[str, int], ...] = (
        ("%m-%d-%y  %I:%M%p", len("01-02-06  03:04PM")),
        ("%Y-%m-%d  %H:%M", len("2006-01-02  15:04")),
    )

    def parse(self, line: str) -> DirectoryEntry:
        original = line
        stamp = None
        for fmt, width in self.TIME_FORMATS:
            try:
                stamp = datetime.strptime(line[:width], fmt)
            except ValueError:
                continue
            line = line[width:]
            break
        if stamp is None:
            raise UnsupportedListLine(original)

        line = line.lstrip(" ")
        if line.startswith("<DIR>"):
            return DirectoryEntry(EntryType.FOLDER, line[len("<DIR>"):].lstrip(" "), time=stamp)

        size_text, sep, name = line.partition(" ")
        if not sep or not size_text.isdigit():
            raise UnsupportedListLine(original)
        return DirectoryEntry(EntryType.FILE, name.lstrip(" "), int(size_text), stamp)


# Order matters: machine listings must never reach the heuristic parsers
LIST_LINE_PARSERS: Tuple[ListLineParser, ...] = (
    FactsListParser(),
    UnixListParser(),
    DosListParser(),
)


def parse_list_line(line: str) -> DirectoryEntry:
    """
    Decode a LIST line with the first parser that recognises it.

    Raises:
        UnsupportedListLine: If no parser recognises the line
        FTPProtocolFormatError: If the recognising parser finds it invalid
    """
    for parser in LIST_LINE_PARSERS:
        try:
            return parser.parse(line)
        except UnsupportedListLine:
            continue
    raise UnsupportedListLine(line)


def parse_list_lines(lines: Sequence[str]) -> List[DirectoryEntry]:
    """Decode a whole listing, skipping lines no parser can handle."""
    entries = []
    for line in lines:
        try:
            entries.append(parse_list_line(line))
        except FTPProtocolFormatError:
            continue
    return entries
