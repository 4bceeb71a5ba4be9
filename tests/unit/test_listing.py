"""Unit tests for LIST line decoding."""

import pytest
from datetime import datetime

from ftpq.ftp.exceptions import FTPProtocolFormatError
from ftpq.ftp.listing import (
    DirectoryEntry,
    DosListParser,
    EntryType,
    FactsListParser,
    ListLineParser,
    UnixListParser,
    UnsupportedListLine,
    _parse_ls_time,
    parse_list_line,
    parse_list_lines,
)


class TestFactsListParser:
    """Tests for RFC 3659 machine listings."""

    def test_file(self):
        entry = FactsListParser().parse("type=file;size=12;modify=20200101120000; notes.txt")
        assert entry == DirectoryEntry(EntryType.FILE, "notes.txt", 12, datetime(2020, 1, 1, 12, 0, 0))

    def test_directory_types(self):
        parser = FactsListParser()
        for kind in ("dir", "cdir", "pdir", "DIR"):
            assert parser.parse(f"type={kind}; backups").entry_type == EntryType.FOLDER

    def test_symlink(self):
        entry = FactsListParser().parse("type=OS.unix=symlink;size=5; latest")
        assert entry.entry_type == EntryType.LINK

    def test_fractional_modify(self):
        entry = FactsListParser().parse("modify=20200101120000.123;type=file; a")
        assert entry.time == datetime(2020, 1, 1, 12, 0, 0)

    def test_name_with_spaces(self):
        assert FactsListParser().parse("type=file;size=1; my file.txt").name == "my file.txt"

    def test_not_a_facts_line(self):
        with pytest.raises(UnsupportedListLine):
            FactsListParser().parse("-rw-r--r-- 1 ftp ftp 6 Jan 2 2006 a;b")

    def test_bad_size(self):
        with pytest.raises(FTPProtocolFormatError):
            FactsListParser().parse("type=file;size=abc; a")

    def test_bad_modify(self):
        with pytest.raises(FTPProtocolFormatError):
            FactsListParser().parse("type=file;modify=yesterday; a")


class TestUnixListParser:
    """Tests for ls -l style listings."""

    def test_file_with_year(self):
        entry = UnixListParser().parse("-rw-r--r--   1 ftp ftp  4096 Jan  2  2006 report.pdf")
        assert entry == DirectoryEntry(EntryType.FILE, "report.pdf", 4096, datetime(2006, 1, 2))

    def test_directory(self):
        entry = UnixListParser().parse("drwxr-xr-x   2 ftp ftp  512 Mar 10  2019 photos")
        assert entry.entry_type == EntryType.FOLDER
        assert entry.size == 0

    def test_symlink_keeps_target_in_name(self):
        entry = UnixListParser().parse("lrwxrwxrwx   1 ftp ftp  7 Mar 10  2019 latest -> v1.2")
        assert entry.entry_type == EntryType.LINK
        assert entry.name == "latest -> v1.2"

    def test_folder_variant(self):
        entry = UnixListParser().parse("drwxr-xr-x folder 0 Mar 10 2019 music")
        assert entry == DirectoryEntry(EntryType.FOLDER, "music", 0, datetime(2019, 3, 10))

    def test_zero_link_variant(self):
        entry = UnixListParser().parse("-rw-r--r-- 0 1234 1234 Mar 10 2019 song.mp3")
        assert entry == DirectoryEntry(EntryType.FILE, "song.mp3", 1234, datetime(2019, 3, 10))

    def test_unknown_type_character(self):
        with pytest.raises(FTPProtocolFormatError):
            UnixListParser().parse("crw-r--r--   1 root root  0 Jan  2  2006 tty")

    def test_too_few_fields(self):
        with pytest.raises(UnsupportedListLine):
            UnixListParser().parse("total 12")

    def test_bad_time(self):
        with pytest.raises(FTPProtocolFormatError):
            UnixListParser().parse("-rw-r--r--   1 ftp ftp  6 Foo  2  2006 a.txt")


class TestParseLsTime:
    """Tests for the year-less ls time format."""

    def test_clock_uses_current_year(self):
        now = datetime(2024, 6, 1, 12, 0)
        assert _parse_ls_time(["Mar", "10", "15:04"], "", now) == datetime(2024, 3, 10, 15, 4)

    def test_future_clock_means_last_year(self):
        now = datetime(2024, 1, 5, 12, 0)
        assert _parse_ls_time(["Dec", "30", "08:00"], "", now) == datetime(2023, 12, 30, 8, 0)


class TestDosListParser:
    """Tests for MS-DOS style listings."""

    def test_directory(self):
        entry = DosListParser().parse("01-02-06  03:04PM       <DIR>          Program Files")
        assert entry == DirectoryEntry(EntryType.FOLDER, "Program Files", 0, datetime(2006, 1, 2, 15, 4))

    def test_file(self):
        entry = DosListParser().parse("01-02-06  03:04PM                 1024 readme.txt")
        assert entry == DirectoryEntry(EntryType.FILE, "readme.txt", 1024, datetime(2006, 1, 2, 15, 4))

    def test_iso_date(self):
        entry = DosListParser().parse("2006-01-02  15:04       2048 data.bin")
        assert entry.time == datetime(2006, 1, 2, 15, 4)
        assert entry.size == 2048

    def test_unrecognised_line(self):
        with pytest.raises(UnsupportedListLine) as exc_info:
            DosListParser().parse("hello world")
        assert exc_info.value.reply == "hello world"

    def test_missing_size_reports_whole_line(self):
        line = "01-02-06  03:04PM  readme.txt"
        with pytest.raises(UnsupportedListLine) as exc_info:
            DosListParser().parse(line)
        assert exc_info.value.reply == line


class TestParseListLine:
    """Tests for parser ordering and whole-listing decoding."""

    def test_facts_take_priority(self):
        # The name looks like a DOS line
        entry = parse_list_line("type=dir;modify=20200101120000; 01-02-06  03:04PM  <DIR> x")
        assert entry.entry_type == EntryType.FOLDER
        assert entry.name == "01-02-06  03:04PM  <DIR> x"

    def test_falls_through_to_dos(self):
        entry = parse_list_line("01-02-06  03:04PM       <DIR>          Windows")
        assert entry.is_dir is True

    def test_no_parser_matches(self):
        with pytest.raises(UnsupportedListLine):
            parse_list_line("total 42")

    def test_invalid_line_is_format_error(self):
        with pytest.raises(FTPProtocolFormatError):
            parse_list_line("-rw-r--r--   1 ftp ftp  big Jan  2  2006 a.txt")

    def test_parse_list_lines_skips_bad_lines(self):
        entries = parse_list_lines([
            "total 42",
            "-rw-r--r--   1 ftp ftp  6 Jan  2  2006 a.txt",
            "-rw-r--r--   1 ftp ftp  big Jan  2  2006 b.txt",
            "type=file;size=3; c.txt",
        ])
        assert [entry.name for entry in entries] == ["a.txt", "c.txt"]

    def test_parser_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            ListLineParser()

    def test_custom_parser_must_implement_parse(self):
        class Incomplete(ListLineParser):
            pass

        class Fixed(ListLineParser):
            def parse(self, line):
                return DirectoryEntry(name=line, entry_type=EntryType.FILE)

        with pytest.raises(TypeError):
            Incomplete()
        assert Fixed().parse("x").name == "x"
