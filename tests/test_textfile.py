#!/usr/bin/env python3

'''
   Tests for the interpreted text dump
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

from readtape.base import tap
from readtape.base.textfile import TextFile, dump_tapfile

def dump_options(make_options, tmp_path, *options):
    opts = make_options(*options, baseoutfilename=str(tmp_path / "out"))
    opts.finish_txtfile()
    return opts

class TestTextFile():

    def test_hex(self, make_options, tmp_path, log):
        opts = dump_options(make_options, tmp_path, "-hex")
        txt = TextFile(opts, log)
        txt.record(b"AB\n")
        txt.close()
        assert txt.filename == str(tmp_path / "out.hex.txt")
        lines = open(txt.filename).read().splitlines()
        assert lines[0] == "file: " + txt.filename
        assert lines[1] == "options: -hex -linesize=64"
        assert lines[2] == "    3: 41420A"
        assert "no blocks had errors" in lines
        assert "no block had warnings" in lines

    def test_flags(self, make_options, tmp_path, log):
        opts = dump_options(make_options, tmp_path, "-hex")
        txt = TextFile(opts, log)
        txt.record(b"\x01", errcount=1)
        txt.record(b"\x02", warncount=2)
        txt.record(b"\x03", errcount=1, warncount=1)
        txt.close()
        lines = open(txt.filename).read().splitlines()
        assert lines[2] == "!   1: 01"
        assert lines[3] == "?   1: 02"
        assert lines[4] == "X   1: 03"
        assert "1 block(s) with errors were marked with a ! before the length" in lines
        assert "1 block(s) with warnings were marked with a ? before the length" in lines
        assert txt.numerrorsandwarnings == 1

    def test_octal2(self, make_options, tmp_path, log):
        opts = dump_options(make_options, tmp_path, "-octal2")
        txt = TextFile(opts, log)
        txt.record(b"\x01\x02\x03")
        txt.close()
        lines = open(txt.filename).read().splitlines()
        assert lines[1] == "options: -octal2 -linesize=64 -dataspace=2"
        assert lines[2].rstrip() == "    3: 000402 003"

    def test_line_wrap(self, make_options, tmp_path, log):
        opts = dump_options(make_options, tmp_path, "-hex", "-linesize=4")
        txt = TextFile(opts, log)
        txt.record(bytes(range(6)))
        txt.close()
        lines = open(txt.filename).read().splitlines()
        assert lines[2] == "    6: 00010203"
        assert lines[3] == "       0405"

    def test_checksum_line(self, make_options, tmp_path, log):
        opts = dump_options(make_options, tmp_path, "-hex")
        txt = TextFile(opts, log)
        txt.record(b"\x00", checksum=0xCBF43926)
        txt.close()
        assert "       CRC-32 CBF43926" in open(txt.filename).read().splitlines()

    def test_no_records_no_file(self, make_options, tmp_path, log):
        opts = dump_options(make_options, tmp_path, "-hex")
        txt = TextFile(opts, log)
        txt.close()
        assert txt.filename is None
        assert not (tmp_path / "out.hex.txt").exists()

class TestDumpTapfile():

    def test_dump(self, make_options, tmp_path, log):
        tapname = tmp_path / "in.tap"
        with open(tapname, "wb") as file:
            writer = tap.TapWriter(file)
            writer.write_record(b"HELLO")
            writer.write_record(b"BAD", error=True)
            writer.write_tapemark()
            writer.write_marker(tap.TAP_ERASEGAP)
            writer.write_end()
        opts = dump_options(make_options, tmp_path, "-hex")
        txt = dump_tapfile(str(tapname), opts, log)
        assert txt.numrecords == 2
        assert txt.numerrors == 1
        assert txt.numtapemarks == 1
        text = open(txt.filename).read()
        assert "    5: 48454C4C4F\n" in text
        assert "!   3: 424144\n" in text
        assert "tape mark\n" in text
        assert "erase gap\n" in text
        assert ".tap end of medium\n" in text
