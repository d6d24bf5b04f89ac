#!/usr/bin/env python3

'''
   Tests for reading a whole input file
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

import io

import pytest

from readtape.base import errors
from readtape.base.blockreader import BlockReader, GCR_BPI
from readtape.base.log import Log
from readtape.base.trackstate import BS_BADBLOCK, BS_BLOCK, BS_NOISE
from readtape.formats.gcr import GroupCodedRecording
from readtape.formats.pe import PhaseEncoding

def make_reader(make_options, silent_csv, tmp_path, monkeypatch, *options):
    monkeypatch.chdir(tmp_path)
    silent_csv(tmp_path / "tape.csv")
    opts = make_options(*options, baseoutfilename=str(tmp_path / "tape"))
    opts.head_to_trk = None
    opts.finish_txtfile()
    return BlockReader(opts, Log(io.StringIO()), str(tmp_path / "tape"), "", ["readtape"])

class TestProcess():

    def test_silent_pe(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = make_reader(make_options, silent_csv, tmp_path, monkeypatch, "-pe", "-bpi=1600", "-ips=50")
        assert reader.process()
        assert isinstance(reader.dec.encoding, PhaseEncoding)
        assert reader.opts.ntrks == 9
        assert reader.dec.sample_deltat == pytest.approx(1e-6)
        assert reader.tape.numblks == 0
        assert reader.tape.numtapemarks == 0
        assert reader.source.file is None
        output = reader.log.stdout.getvalue()
        assert "derived ntrks=9 from .CSV file header" in output
        assert "9 track PE encoding, odd parity, 1600 BPI at 50 IPS" in output

    def test_gcr_density(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = make_reader(make_options, silent_csv, tmp_path, monkeypatch, "-gcr", "-bpi=1600")
        reader.process()
        assert isinstance(reader.dec.encoding, GroupCodedRecording)
        assert reader.opts.bpi == GCR_BPI
        assert "BPI was reset to 9042 for GCR 6250" in reader.log.stdout.getvalue()

    def test_summary(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = make_reader(
            make_options, silent_csv, tmp_path, monkeypatch, "-pe", "-bpi=1600", "-ips=50",
            "-sumt=" + str(tmp_path / "sum.txt"), "-sumc=" + str(tmp_path / "sum.csv"),
        )
        reader.process()
        reader.summary()
        reader.summary_csv()
        text = (tmp_path / "sum.txt").read_text()
        assert "summary for file" in text
        assert "decoded 0 tape marks and 0 blocks" in text
        line = (tmp_path / "sum.csv").read_text()
        assert line.startswith("=\"%s\"" % (tmp_path / "tape"))
        assert line.rstrip().endswith(",\"y\"")

    def test_missing_input(self, make_options, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        opts = make_options("-pe", baseoutfilename=str(tmp_path / "nothing"))
        reader = BlockReader(opts, Log(io.StringIO()), str(tmp_path / "nothing"))
        with pytest.raises(errors.FileError):
            reader.process()

    def test_whirlwind_needs_order(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = make_reader(make_options, silent_csv, tmp_path, monkeypatch, "-whirlwind")
        with pytest.raises(errors.UsageError):
            reader.process()

class TestChooseBest():

    def reader(self, make_options, silent_csv, tmp_path, monkeypatch, results):
        reader = make_reader(make_options, silent_csv, tmp_path, monkeypatch, "-pe", "-bpi=1600", "-m")
        reader.setup()
        block = reader.dec.block
        for i, (blktype, errcount, warncount) in enumerate(results):
            block.results[i].blktype = blktype
            block.results[i].errcount = errcount
            block.results[i].warncount = warncount
        block.tries = len(results)
        return reader

    def test_fewest_warnings(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = self.reader(make_options, silent_csv, tmp_path, monkeypatch, [
            (BS_BLOCK, 1, 0), (BS_BLOCK, 0, 3), (BS_BLOCK, 0, 1),
        ])
        reader.choose_best()
        assert reader.dec.block.parmset == 2
        assert reader.ok

    def test_fewest_errors(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = self.reader(make_options, silent_csv, tmp_path, monkeypatch, [
            (BS_BLOCK, 3, 0), (BS_BADBLOCK, 0, 0), (BS_BLOCK, 2, 5),
        ])
        reader.choose_best()
        assert reader.dec.block.parmset == 2
        assert not reader.ok

    def test_noise(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = self.reader(make_options, silent_csv, tmp_path, monkeypatch, [
            (BS_NOISE, 0, 0), (BS_NOISE, 0, 0),
        ])
        reader.choose_best()
        assert reader.dec.block.parmset == 0

    def test_next_parmset_wraps(self, make_options, silent_csv, tmp_path, monkeypatch):
        reader = self.reader(make_options, silent_csv, tmp_path, monkeypatch, [])
        block = reader.dec.block
        block.parmset = len(reader.parmsets) - 1
        assert reader.next_parmset() == 0
