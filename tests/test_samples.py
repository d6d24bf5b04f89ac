#!/usr/bin/env python3

'''
   Tests for the sample sources
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

import pytest

from readtape.base import errors
from readtape.base import samples

VOLTAGES = (
    (0.5, -1.0),
    (0.25, 0.75),
    (-0.5, 0.0),
    (1.0, -0.125),
    (0.0, 0.5),
    (-0.75, 0.25),
)

DELTAT = 2e-6

def write_csv(path, tstart=0.001):
    with open(path, "w") as file:
        file.write("Time[s], Channel 0, Channel 1\n")
        file.write("Time[s],Voltage,Voltage\n")
        for i, (v0, v1) in enumerate(VOLTAGES):
            file.write("%.7f, %g, %g\n" % (tstart + i * DELTAT, v0, v1))

def csv_source(make_options, log, path, **attributes):
    opts = make_options(**attributes)
    src = samples.CsvSource(str(path), opts, log)
    src.open()
    src.read_header()
    return src

class TestCsvSource():

    def test_header(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv")
        assert src.opts.ntrks == 2
        assert src.nheads == 2
        assert src.sample_deltat == pytest.approx(DELTAT)

    def test_samples(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv")
        for i, (v0, v1) in enumerate(VOLTAGES):
            sample = src.next_sample()
            assert sample.time == pytest.approx(0.001 + i * DELTAT)
            assert sample.voltages[:2] == [v0, v1]
        assert src.next_sample() is None
        assert src.numsamples == len(VOLTAGES)

    def test_invert_and_subsample(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv", invert=True, subsample=2)
        assert src.sample_deltat == pytest.approx(2 * DELTAT)
        got = []
        while True:
            sample = src.next_sample()
            if sample is None:
                break
            got.append(sample.voltages[0])
        assert got == [-0.25, -1.0, 0.75]

    def test_restore_position(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv")
        src.next_sample()
        pos = src.save_position()
        first = src.next_sample()
        src.next_sample()
        src.restore_position(pos)
        again = src.next_sample()
        assert again.time == first.time
        assert again.voltages == first.voltages

    def test_skip(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv")
        src.skip(2)
        assert src.next_sample().voltages[:2] == list(VOLTAGES[2])
        with pytest.raises(errors.FileError):
            src.skip(10)

    def test_max_voltage(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv")
        assert src.max_voltage() == 1.0
        assert src.next_sample().voltages[:2] == list(VOLTAGES[0])

    def test_short_line(self, make_options, log, tmp_path):
        path = tmp_path / "in.csv"
        path.write_text("title\nTime,V,V\n0.0, 1.0, 2.0\n0.000001, 1.0\n")
        src = csv_source(make_options, log, path)
        src.next_sample()
        with pytest.raises(errors.FileError):
            src.next_sample()

class TestTbin():

    def test_csv_to_tbin(self, make_options, log, tmp_path):
        write_csv(tmp_path / "in.csv")
        src = csv_source(make_options, log, tmp_path / "in.csv", quiet=True)
        count = samples.csv_to_tbin(src, str(tmp_path / "in.tbin"), src.opts, log)
        assert count == len(VOLTAGES)
        # the CSV source is back where it was
        assert src.next_sample().voltages[:2] == list(VOLTAGES[0])

        opts = make_options(quiet=True)
        tbin = samples.TbinSource(str(tmp_path / "in.tbin"), opts, log)
        tbin.open()
        tbin.read_header()
        assert opts.ntrks == 2
        assert tbin.sample_deltat == pytest.approx(DELTAT)
        assert tbin.maxvolts == 1.0
        assert tbin.reordered()
        for i, (v0, v1) in enumerate(VOLTAGES):
            sample = tbin.next_sample()
            assert sample.time == pytest.approx(0.001 + i * DELTAT)
            assert sample.voltages[0] == pytest.approx(v0, abs=1 / 32767)
            assert sample.voltages[1] == pytest.approx(v1, abs=1 / 32767)
        assert tbin.next_sample() is None

    def test_track_order_extension(self, make_options, log, tmp_path):
        filename = str(tmp_path / "ww.tbin")
        with samples.TbinWriter(filename, 6, 1e-6, 2.0) as writer:
            writer.write_header(0.0, flags=samples.TBIN_NO_REORDER, trkorder="CLMclm")
            writer.write_sample([2.0, -2.0, 4.0, 0.0, 0.0, 0.0])
        opts = make_options("-whirlwind", quiet=True)
        tbin = samples.TbinSource(filename, opts, log)
        tbin.open()
        tbin.read_header()
        assert opts.track_order == "CLMclm"
        assert not tbin.reordered()
        assert tbin.nheads == 6
        assert opts.ntrks == 6
        heads = tbin.read_heads()[1][:3]
        # clipped at maxvolts
        assert heads == [2.0, -2.0, 2.0]

    def test_bad_tag(self, make_options, log, tmp_path):
        path = tmp_path / "bad.tbin"
        path.write_bytes(b"NOTATBIN" + bytes(samples.TBIN_HDR.size - 8))
        tbin = samples.TbinSource(str(path), make_options(quiet=True), log)
        tbin.open()
        with pytest.raises(errors.FileError):
            tbin.read_header()

    def test_short_file(self, make_options, log, tmp_path):
        path = tmp_path / "short.tbin"
        path.write_bytes(b"TBINHDR\0")
        tbin = samples.TbinSource(str(path), make_options(quiet=True), log)
        tbin.open()
        with pytest.raises(errors.FileError):
            tbin.read_header()
