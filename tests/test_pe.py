#!/usr/bin/env python3

'''
   Tests for PE end of block handling
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

from readtape.base.trackstate import BS_BLOCK, BS_NOISE, BS_TAPEMARK
from readtape.formats.pe import PhaseEncoding, TAPEMARK_BUSY, PE_MAX_POSTBITS

BITSPACE = 1 / (1600 * 50)

def decoder(make_options, make_decoder, ntrks=9):
    opts = make_options("-pe", ntrks=ntrks, nheads=ntrks, bpi=1600, ips=50)
    return make_decoder(PhaseEncoding, opts)

def odd_parity(byte):
    word = byte << 1
    if bin(byte).count("1") % 2 == 0:
        word |= 1
    return word

def feed_block(dec, words):
    ''' Add the words, then the postamble, to every track '''
    postamble = [(1 << dec.ntrks) - 1] + [0] * PE_MAX_POSTBITS
    for t in dec.tracks():
        t.datablock = True
        shift = dec.ntrks - 1 - t.trknum
        for i, word in enumerate(words + postamble):
            dec.encoding.addbit(t, (word >> shift) & 1, False, (i + 1) * BITSPACE)

def tapemark(dec):
    for t in dec.tracks():
        t.peakcount = 80 if t.trknum in TAPEMARK_BUSY else 0

class TestTapemark():

    def test_tapemark(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        tapemark(dec)
        assert dec.encoding.is_tapemark()
        dec.encoding.end_of_block()
        assert dec.result.blktype == BS_TAPEMARK

    def test_busy_track_with_data(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        tapemark(dec)
        dec.trkstate[TAPEMARK_BUSY[0]].datacount = 10
        assert not dec.encoding.is_tapemark()

    def test_quiet_track_with_peaks(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        tapemark(dec)
        dec.trkstate[1].peakcount = 80
        assert not dec.encoding.is_tapemark()

    def test_seven_tracks(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder, ntrks=7)
        tapemark(dec)
        assert not dec.encoding.is_tapemark()

class TestEndOfBlock():

    def test_block(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        feed_block(dec, [odd_parity(x) for x in b"PE DATA"])
        dec.encoding.end_of_block()
        result = dec.result
        assert result.blktype == BS_BLOCK
        assert result.minbits == result.maxbits == 7
        assert result.vparity_errs == 0
        assert result.track_mismatch == 0
        assert dec.block_data(7) == b"PE DATA"
        assert dec.interblock_counter > 0

    def test_parity_error(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        words = [odd_parity(x) for x in b"PE DATA"]
        words[3] ^= 1
        feed_block(dec, words)
        dec.encoding.end_of_block()
        assert dec.result.blktype == BS_BLOCK
        assert dec.result.vparity_errs == 1

    def test_only_once(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        dec.encoding.end_of_block()
        dec.result.blktype = BS_BLOCK
        dec.encoding.end_of_block()
        assert dec.result.blktype == BS_BLOCK

    def test_noise(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        dec.encoding.end_of_block()
        assert dec.result.blktype == BS_NOISE
        assert dec.result.maxbits == 0

    def test_noise_during_density_detection(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        dec.doing_density_detection = True
        dec.encoding.end_of_block()
        assert dec.result.blktype != BS_NOISE

class TestPreamble():

    def test_reverse_polarity(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        t = dec.trkstate[0]
        t.peakcount = 1
        dec.encoding.preamble_peak(t, True)
        assert not t.bit1_up
        assert t.clknext
        t2 = dec.trkstate[1]
        t2.peakcount = 1
        dec.encoding.preamble_peak(t2, True)
        assert dec.log.stdout.getvalue().count("reverse PE signal polarity") == 1

    def test_normal_polarity(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        t = dec.trkstate[0]
        t.peakcount = 1
        dec.encoding.preamble_peak(t, False)
        assert t.bit1_up
        assert "reverse" not in dec.log.stdout.getvalue()
