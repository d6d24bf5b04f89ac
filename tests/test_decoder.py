#!/usr/bin/env python3

'''
   Tests for decoding sampled waveforms
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

   The waveforms are Gaussian flux transition pulses of 2 volts, with
   the signs alternating on each track the way a read head sees them.
'''

import io

import pytest

from readtape import main
from readtape.base import samples
from readtape.base import tap
from readtape.base.blockreader import BlockReader
from readtape.base.log import Log
from readtape.base.trackstate import BS_NONE, BS_BLOCK, BS_TAPEMARK
from readtape.formats.gcr import GroupCodedRecording
from readtape.formats.nrzi import Nrzi
from readtape.formats.pe import PhaseEncoding, PE_MAX_POSTBITS
from readtape.formats.whirlwind import Whirlwind

from test_nrzi import nine_track_block
from test_pe import odd_parity

NRZI_BIT = 25       # samples per bit at 800 BPI, 50 IPS, 1 usec
PE_BIT = 25         # samples per bit at 1600 BPI, 50 IPS, 0.5 usec
WW_BIT = 200        # samples per bit at 100 BPI, 50 IPS, 1 usec
GAP = 700
LEADER = 300

TAPEMARK = [0x26, 0, 0, 0, 0, 0, 0, 0, 0x26]
HELLO = b"HELLO WORLD, NRZI!!"
COUNTING = bytes(range(1, 81))

def nrzi_pulses(blocks, ntrks=9, start=LEADER):
    ''' A pulse for every one bit, each track alternating in sign '''
    pulses = [[] for _i in range(ntrks)]
    sign = [1.0] * ntrks
    position = start
    for words in blocks:
        for word in words:
            for trk in range(ntrks):
                if word & (1 << (ntrks - 1 - trk)):
                    pulses[trk].append((position, 2.0 * sign[trk]))
                    sign[trk] = -sign[trk]
            position += NRZI_BIT
        position += GAP
    return pulses, position

def pe_pulses(data, ntrks=9, start=200):
    '''
       Preamble of zeros, a one, the data, and the mirrored postamble.
       Zeros go down in the middle of the bit cell.
    '''
    allones = (1 << ntrks) - 1
    words = [0] * 40 + [allones] + data + [allones] + [0] * PE_MAX_POSTBITS
    pulses = [[] for _i in range(ntrks)]
    for trk in range(ntrks):
        bits = [(word >> (ntrks - 1 - trk)) & 1 for word in words]
        for i, bit in enumerate(bits):
            cell = start + i * PE_BIT
            if i > 0 and bit == bits[i - 1]:
                pulses[trk].append((cell, -2.0 if bit else 2.0))
            pulses[trk].append((cell + PE_BIT / 2, 2.0 if bit else -2.0))
    return pulses, start + len(words) * PE_BIT

def ww_pulses(chars, start=600):
    '''
       Block mark, the characters one bit later, then the next block mark.
       Tracks are CLMclm; a pulse is a top, then a bottom.
    '''
    pulses = [[] for _i in range(6)]

    def pulse(trk, position):
        pulses[trk].append((position, 2.0))
        pulses[trk].append((position + 20, -2.0))

    for trk in (1, 4):
        pulse(trk, start)
    position = start + 2 * WW_BIT
    for char in chars:
        for trk in (0, 3):
            pulse(trk, position)
        if char & 2:
            for trk in (2, 5):
                pulse(trk, position)
        if char & 1:
            for trk in (1, 4):
                pulse(trk, position)
        position += WW_BIT
    for trk in (1, 4):
        pulse(trk, position)
    return pulses, position + 3 * WW_BIT

def decode_samples(dec, volts, deltat=1e-6, each_sample=None):
    '''
       Feed the samples until the decoder has a block.
       Returns the block status and the index of the last sample used.
    '''
    dec.set_window_width()
    for i, voltages in enumerate(volts):
        status = dec.process_sample(samples.Sample(i * deltat, voltages))
        if each_sample:
            each_sample(dec)
        if status != BS_NONE:
            return status, i
    dec.force_end_of_block()
    return dec.result.blktype, len(volts)

def nrzi_decoder(make_options, make_decoder):
    opts = make_options("-nrzi", ntrks=9, nheads=9, bpi=800, ips=50)
    return make_decoder(Nrzi, opts)

def check_windows(dec):
    ''' The window limits bound everything in the window '''
    for t in dec.tracks():
        if t.t_lastpeak:
            window = list(t.window(dec.pkww_width))
            assert len(window) <= dec.pkww_width
            assert t.pkww_minv <= min(window)
            assert max(window) <= t.pkww_maxv

def block_reader(make_options, tmp_path, monkeypatch, *options):
    monkeypatch.chdir(tmp_path)
    opts = make_options(*options, baseoutfilename=str(tmp_path / "tape"))
    opts.head_to_trk = None
    opts.finish_txtfile()
    return BlockReader(opts, Log(io.StringIO()), str(tmp_path / "tape"), "", ["readtape"])

def read_tap(filename):
    with open(filename, "rb") as file:
        return list(tap.TapReader(file))

class TestNrziWaveform():

    def test_block(self, make_options, make_decoder, waveform):
        dec = nrzi_decoder(make_options, make_decoder)
        pulses, nsamples = nrzi_pulses([nine_track_block(HELLO)])
        status, _last = decode_samples(dec, waveform(pulses, nsamples))
        result = dec.result
        assert status == BS_BLOCK
        assert result.minbits == result.maxbits == len(HELLO)
        assert dec.block_data(result.minbits) == HELLO
        assert result.vparity_errs == 0
        assert result.crc_errs == 0
        assert result.lrc_errs == 0
        assert result.missed_midbits == 0

    def test_tapemark(self, make_options, make_decoder, waveform):
        dec = nrzi_decoder(make_options, make_decoder)
        pulses, nsamples = nrzi_pulses([TAPEMARK])
        status, _last = decode_samples(dec, waveform(pulses, nsamples))
        assert status == BS_TAPEMARK

    def test_waits_for_the_gap(self, make_options, make_decoder, waveform):
        dec = nrzi_decoder(make_options, make_decoder)
        words = nine_track_block(HELLO)
        pulses, nsamples = nrzi_pulses([words])
        status, last = decode_samples(dec, waveform(pulses, nsamples))
        assert status == BS_BLOCK
        lrc_position = LEADER + (len(words) - 1) * NRZI_BIT
        # the block is only done after the interblock gap
        assert last > lrc_position + 200
        assert dec.interblock_counter == 0

    def test_peak_windows(self, make_options, make_decoder, waveform):
        dec = nrzi_decoder(make_options, make_decoder)
        pulses, nsamples = nrzi_pulses([nine_track_block(COUNTING)])
        status, _last = decode_samples(dec, waveform(pulses, nsamples), each_sample=check_windows)
        assert status == BS_BLOCK
        assert dec.block_data(len(COUNTING)) == COUNTING

    def test_agc(self, make_options, make_decoder, waveform):
        dec = nrzi_decoder(make_options, make_decoder)
        data = b"\xff" * 64
        pulses, nsamples = nrzi_pulses([nine_track_block(data)])
        halfway = LEADER + 32 * NRZI_BIT
        # track 0 fades to 60% in the second half of the block
        pulses[0] = [
            (position, height * 0.6 if position >= halfway else height)
            for position, height in pulses[0]
        ]
        status, _last = decode_samples(dec, waveform(pulses, nsamples))
        assert status == BS_BLOCK
        assert dec.block_data(len(data)) == data
        assert dec.trkstate[0].max_agc_gain > 1.3
        assert dec.trkstate[1].max_agc_gain < 1.1
        assert dec.result.alltrk_max_agc_gain == dec.trkstate[0].max_agc_gain

    def test_deskew_delay(self, make_options, make_decoder):
        dec = nrzi_decoder(make_options, make_decoder)
        dec.skew.delaycnt[0] = 3
        dec.set_window_width()
        seen = []
        for i in range(10):
            dec.process_sample(samples.Sample(i * 1e-6, [0.01 * i] * 9))
            seen.append((dec.trkstate[0].v_now, dec.trkstate[1].v_now))
        assert [trk0 for trk0, _trk1 in seen[3:]] == pytest.approx([0.01 * i for i in range(7)])
        assert [trk1 for _trk0, trk1 in seen] == pytest.approx([0.01 * i for i in range(10)])
        assert all(t.peakcount == 0 for t in dec.tracks())

    def test_skewed_track(self, make_options, make_decoder, waveform):
        dec = nrzi_decoder(make_options, make_decoder)
        data = b"\xff" * 32
        pulses, nsamples = nrzi_pulses([nine_track_block(data)])
        # track 0 is early, and the deskew holds it back
        pulses[0] = [(position - 3, height) for position, height in pulses[0]]
        dec.skew.delaycnt[0] = 3
        status, _last = decode_samples(dec, waveform(pulses, nsamples))
        assert status == BS_BLOCK
        assert dec.block_data(len(data)) == data
        assert dec.result.missed_midbits == 0

class TestPeWaveform():

    def test_block(self, make_options, make_decoder, waveform):
        opts = make_options("-pe", ntrks=9, nheads=9, bpi=1600, ips=50)
        dec = make_decoder(PhaseEncoding, opts, deltat=0.5e-6)
        data = b"PE DATA!"
        pulses, nsamples = pe_pulses([odd_parity(x) for x in data])
        volts = waveform(pulses, nsamples + 600, sigma=2.0)
        status, _last = decode_samples(dec, volts, deltat=0.5e-6, each_sample=check_windows)
        result = dec.result
        assert status == BS_BLOCK
        assert result.minbits == result.maxbits == len(data)
        assert dec.block_data(len(data)) == data
        assert result.vparity_errs == 0
        assert result.corrected_bits == 0
        assert all(t.datablock for t in dec.tracks())
        assert "reverse PE signal polarity" not in dec.log.stdout.getvalue()

class TestAverageHeight():

    def test_nrzi_and_gcr_take_every_height(self, make_options, make_decoder):
        for encoding_class, mode, bpi in ((Nrzi, "-nrzi", 800), (GroupCodedRecording, "-gcr", 9042)):
            opts = make_options(mode, ntrks=9, nheads=9, bpi=bpi, ips=50)
            dec = make_decoder(encoding_class, opts)
            t = dec.trkstate[0]
            t.peakcount = 5
            t.t_top = 1e-3
            t.v_top, t.v_bot = 0.5, 1.0
            dec.encoding.top(t)
            assert t.v_avg_height_count == 1, mode
            assert t.v_avg_height_sum == pytest.approx(-0.5), mode

    def test_pe_takes_positive_heights(self, make_options, make_decoder):
        opts = make_options("-pe", ntrks=9, nheads=9, bpi=1600, ips=50)
        dec = make_decoder(PhaseEncoding, opts)
        t = dec.trkstate[0]
        t.peakcount = 5
        t.t_top = 1e-3
        t.v_top, t.v_bot = 0.5, 1.0
        dec.encoding.top(t)
        assert t.v_avg_height_count == 0
        t.v_top, t.v_bot = 2.0, -2.0
        dec.encoding.top(t)
        assert t.v_avg_height_count == 1
        assert t.v_heights[0] == pytest.approx(4.0)

class TestWholeFile():

    def nrzi_tape(self, waveform, waveform_csv, tmp_path):
        blocks = [nine_track_block(COUNTING), TAPEMARK, nine_track_block(HELLO)]
        pulses, nsamples = nrzi_pulses(blocks)
        waveform_csv(tmp_path / "tape.csv", waveform(pulses, nsamples))

    def test_nrzi_tap(self, waveform, waveform_csv, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        self.nrzi_tape(waveform, waveform_csv, tmp_path)
        prog = main.Main(
            ["readtape", "-nrzi", "-ntrks=9", "-bpi=800", "-ips=50", "-tap", "-nolog", str(tmp_path / "tape")],
            stdout=io.StringIO(),
        )
        assert prog.run() == 0
        records = read_tap(tmp_path / "tape.tap")
        assert [x.kind for x in records] == [tap.REC_DATA, tap.REC_TAPEMARK, tap.REC_DATA, tap.REC_END]
        assert records[0].data == COUNTING
        assert records[2].data == HELLO
        assert not records[0].error
        assert not records[2].error

    def test_nrzi_density(self, make_options, waveform, waveform_csv, tmp_path, monkeypatch):
        self.nrzi_tape(waveform, waveform_csv, tmp_path)
        reader = block_reader(make_options, tmp_path, monkeypatch, "-nrzi", "-ips=50")
        assert reader.process()
        assert reader.opts.bpi == 800
        assert "density was set to 800 BPI" in reader.log.stdout.getvalue()
        assert reader.tape.numblks == 2
        assert reader.tape.numtapemarks == 1
        assert (tmp_path / "tape.001.bin").read_bytes() == COUNTING
        assert (tmp_path / "tape.002.bin").read_bytes() == HELLO

    def test_whirlwind(self, make_options, waveform, waveform_csv, tmp_path, monkeypatch):
        chars = [1, 2, 3, 0, 0, 1, 2, 3, 3, 3, 3, 3, 0, 0, 0, 1]
        pulses, nsamples = ww_pulses(chars)
        waveform_csv(tmp_path / "tape.csv", waveform(pulses, nsamples))
        reader = block_reader(make_options, tmp_path, monkeypatch, "-whirlwind", "-order=CLMclm", "-tap")
        assert reader.process()
        assert isinstance(reader.dec.encoding, Whirlwind)
        assert reader.tape.numtapemarks == 2
        assert reader.tape.numblks == 1
        records = read_tap(tmp_path / "tape.tap")
        assert [x.kind for x in records] == [tap.REC_TAPEMARK, tap.REC_DATA, tap.REC_TAPEMARK, tap.REC_END]
        assert records[1].data == bytes([0x6C, 0x1B, 0xFF, 0x01])
        assert "the flux direction was set to positive" in reader.log.stdout.getvalue()
