#!/usr/bin/env python3

'''
   Tests for the transition statistics
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

import pytest

from readtape.base import errors
from readtape.base import options
from readtape.base import stats

BITSPACING = 20e-6

def peakstats_for(*positions, adjdeskew=False, count=1000):
    ''' Two or more tracks, each with all its peaks at one position '''
    peakstats = stats.PeakStats(options.NRZI, len(positions), adjdeskew)
    for trk, position in enumerate(positions):
        for _i in range(count):
            peakstats.record(BITSPACING, position, trk)
    return peakstats

class TestPeakStats():

    def test_record(self):
        peakstats = peakstats_for(20e-6, 23e-6)
        assert peakstats.trksums[:2] == [1000, 1000]
        assert peakstats.min_transitions() == 1000
        assert peakstats.average_usec(0) == pytest.approx(20.0, abs=0.5)
        assert peakstats.average_usec(1) == pytest.approx(23.0, abs=0.5)
        assert peakstats.stddev_usec(0, peakstats.average_usec(0)) == pytest.approx(0.0, abs=0.01)

    def test_out_of_range(self):
        peakstats = peakstats_for(20e-6, 20e-6)
        peakstats.record(BITSPACING, 1e-6, 0)
        peakstats.record(BITSPACING, 100e-6, 1)
        assert peakstats.counts[0][0] == 1
        assert peakstats.counts[1][-1] == 1
        assert peakstats.trksums[:2] == [1000, 1000]

    def test_write_csv(self, tmp_path):
        peakstats = peakstats_for(20e-6, 23e-6, 20e-6)
        assert peakstats.write_csv(str(tmp_path / "peaks.csv")) == 3000
        lines = (tmp_path / "peaks.csv").read_text().splitlines()
        assert len(lines) == 4
        assert lines[0].startswith("total cnt, ")
        assert lines[0].endswith(",avg uS")
        assert lines[2].startswith("1000, 0, 0,trk1, ")
        assert not peakstats.initialized

class TestSkew():

    def test_fifo(self, log):
        skew = stats.Skew(2, 1e-6, log)
        skew.delaycnt[0] = 2
        assert [skew.delay(0, v) for v in (1.0, 2.0, 3.0, 4.0, 5.0)] == [1.0, 2.0, 1.0, 2.0, 3.0]
        assert [skew.delay(1, v) for v in (1.0, 2.0)] == [1.0, 2.0]

    def test_set_delay(self, log):
        skew = stats.Skew(2, 1e-6, log)
        skew.set_delay(0, 2.4e-6)
        skew.set_delay(1, 2.6e-6)
        assert skew.delaycnt[:2] == [2, 3]

    def test_set_delay_limit(self, log):
        skew = stats.Skew(2, 1e-6, log)
        skew.set_delay(0, 60e-6)
        assert skew.delaycnt[0] == stats.MAXSKEWSAMP
        assert "skew of 60.0 usec is too big" in log.stdout.getvalue()
        with pytest.raises(errors.DecodeAssertion):
            skew.set_delay(1, -1e-6)

    def test_deskew_aligned(self, log):
        skew = stats.Skew(2, 1e-6, log, quiet=True)
        assert skew.compute_deskew(peakstats_for(20e-6, 20e-6), BITSPACING, True)
        assert skew.delaycnt[:2] == [0, 0]

    def test_deskew_late_track(self, log):
        skew = stats.Skew(2, 1e-6, log)
        assert not skew.compute_deskew(peakstats_for(20e-6, 23e-6), BITSPACING, True)
        # the early track waits for the late one
        assert skew.delaycnt[:2] == [3, 0]
        assert skew.max_delay_percent == pytest.approx(15.0, abs=2.5)
        assert "track 0 delayed by 3 clocks" in log.stdout.getvalue()

    def test_deskew_without_setting(self, log):
        skew = stats.Skew(2, 1e-6, log, quiet=True)
        assert not skew.compute_deskew(peakstats_for(20e-6, 23e-6), BITSPACING, False)
        assert skew.delaycnt[:2] == [0, 0]

    def test_adjust(self, log):
        skew = stats.Skew(2, 1e-6, log)
        skew.delaycnt[1] = 2
        peakstats = peakstats_for(23e-6, 20e-6, adjdeskew=True, count=10)
        assert peakstats.block_deviation[0] == pytest.approx(3e-6)
        skew.adjust(peakstats, BITSPACING)
        assert skew.delaycnt[:2] == [1, 1]
        assert peakstats.block_counts[:2] == [0, 0]

class TestDensityEstimator():

    def estimate(self, delta, count=stats.ESTDEN_COUNTNEEDED):
        est = stats.DensityEstimator()
        for _i in range(count):
            est.transition(delta)
        return est

    def test_done(self):
        est = self.estimate(12.5e-6, stats.ESTDEN_COUNTNEEDED - 1)
        assert not est.done()
        assert est.transition(12.5e-6)
        assert est.done()

    def test_long_gaps_ignored(self):
        est = self.estimate(500e-6, 100)
        assert est.totalcount == 0

    def test_nrzi(self, log):
        est = self.estimate(12.5e-6)
        # a few short spikes don't count
        for _i in range(100):
            est.transition(6e-6)
        assert est.setdensity(50, options.NRZI, 1, log) == 1600
        assert "density was set to 1600 BPI" in log.stdout.getvalue()

    def test_pe(self):
        est = self.estimate(6.25e-6)
        assert est.setdensity(50, options.PE, 1) == 1600

    def test_slow_tape(self):
        est = self.estimate(50e-6)
        assert est.setdensity(25, options.NRZI, 1) == 800

    def test_nonstandard(self):
        est = self.estimate(20e-6)
        with pytest.raises(errors.Fatal):
            est.setdensity(50, options.NRZI, 1)
