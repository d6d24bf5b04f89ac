#!/usr/bin/env python3

'''
   Tests for the command line program
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

import io

import pytest

from readtape import main
from readtape.base import errors
from readtape.base import tap

def run(*args):
    stdout = io.StringIO()
    prog = main.Main(["readtape"] + list(args), stdout=stdout)
    return prog, prog.run(), stdout.getvalue()

class TestCommandLine():

    def test_no_arguments(self):
        with pytest.raises(errors.UsageError) as excinfo:
            main.Main(["readtape"], stdout=io.StringIO())
        assert excinfo.value.exit_code == 4

    def test_extra_arguments(self):
        with pytest.raises(errors.UsageError):
            main.Main(["readtape", "one", "two"], stdout=io.StringIO())

    def test_bad_option(self):
        with pytest.raises(errors.UsageError):
            main.Main(["readtape", "-nosuchoption", "file"], stdout=io.StringIO())

    def test_help(self):
        stdout = io.StringIO()
        with pytest.raises(SystemExit) as excinfo:
            main.Main(["readtape", "-h"], stdout=stdout)
        assert excinfo.value.code == 0
        assert "readtape" in stdout.getvalue()

    def test_names(self):
        prog = main.Main(["readtape", "-outp=out/", "dir/tape.tbin"], stdout=io.StringIO())
        assert prog.cmdfilename == "dir/tape"
        assert prog.extension == ".tbin"
        assert prog.opts.baseoutfilename == "out/dir/tape"
        prog = main.Main(["readtape", "tape.v2"], stdout=io.StringIO())
        assert prog.cmdfilename == "tape.v2"
        assert prog.extension == ""

    def test_whirlwind_multiple_tries(self, tmp_path):
        prog = main.Main(["readtape", "-whirlwind", "-m", str(tmp_path / "ww")], stdout=io.StringIO())
        with pytest.raises(errors.UsageError):
            prog.run()

class TestRun():

    def test_tap_dump(self, tmp_path):
        with open(tmp_path / "old.tap", "wb") as file:
            writer = tap.TapWriter(file)
            writer.write_record(b"\x01\x02")
            writer.write_tapemark()
            writer.write_end()
        _prog, code, _output = run("-hex", str(tmp_path / "old.tap"))
        assert code == 0
        text = (tmp_path / "old.hex.txt").read_text()
        assert "    2: 0102\n" in text
        assert "tape mark\n" in text
        assert (tmp_path / "old.log").exists()

    def test_csv_file(self, silent_csv, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        silent_csv(tmp_path / "silent.csv")
        _prog, code, output = run("-pe", "-bpi=1600", "-ips=50", str(tmp_path / "silent"))
        assert code == 0
        assert "summary for file" in output
        assert "summary for file" in (tmp_path / "silent.log").read_text()

    def test_quiet_csv_file(self, silent_csv, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        silent_csv(tmp_path / "silent.csv")
        _prog, code, output = run("-pe", "-bpi=1600", "-q", "-nolog", str(tmp_path / "silent.csv"))
        assert code == 0
        assert output.splitlines()[-1] == "%s: ok" % (tmp_path / "silent")
        assert "summary for file" not in output
        assert not (tmp_path / "silent.log").exists()

    def test_file_list(self, silent_csv, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        silent_csv(tmp_path / "one.csv")
        silent_csv(tmp_path / "two.csv")
        (tmp_path / "list.txt").write_text("-pe -bpi=1600 one\n\n-pe -bpi=1600 -q two.csv\n")
        _prog, code, output = run("-nolog", str(tmp_path / "list.txt"))
        assert code == 0
        assert "one: ok\n" in output
        assert "two: ok\n" in output

    def test_missing_file_list(self, tmp_path):
        prog = main.Main(["readtape", "-f", str(tmp_path / "nolist")], stdout=io.StringIO())
        with pytest.raises(errors.FileError):
            prog.run()
