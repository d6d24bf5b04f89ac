#!/usr/bin/env python3

'''
   Tests for Whirlwind character assembly
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

from readtape.base.options import WWTRK_PRICLK, WWTRK_ALTMSB
from readtape.base.trackstate import BS_TAPEMARK
from readtape.formats.whirlwind import Whirlwind

CHARS = [1, 2, 3, 0, 0, 1, 2, 3]

def decoder(make_options, make_decoder, *options):
    opts = make_options("-whirlwind", "-order=CLMclm", *options, ips=50)
    return make_decoder(Whirlwind, opts)

def assemble(dec, chars):
    enc = dec.encoding
    dec.data[:len(chars)] = chars
    enc.datacount = len(chars)
    enc.assemble_data()
    return dec.result

class TestTrackOrder():

    def test_types(self, make_options):
        opts = make_options("-whirlwind", "-order=CLMxclm")
        assert opts.ntrks == 6
        assert opts.nheads == 7
        assert opts.ww_type_to_trk[WWTRK_PRICLK] == 0
        assert opts.ww_type_to_trk[WWTRK_ALTMSB] == 5

class TestAssembly():

    def test_one_word(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        result = assemble(dec, CHARS)
        assert result.minbits == result.maxbits == 2
        assert dec.block_data(2) == bytes([0x6C, 0x1B])
        assert result.ww_bad_length == 0
        assert result.ww_leading_clock == 0
        assert result.ww_speed_err == 0

    def test_leading_clock(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        result = assemble(dec, [0] + CHARS)
        assert result.ww_leading_clock == 1
        assert dec.block_data(2) == bytes([0x6C, 0x1B])
        assert result.ww_bad_length == 0

    def test_bad_length(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        result = assemble(dec, CHARS + [1, 1, 1, 1])
        assert result.minbits == 3
        assert result.ww_bad_length == 1

    def test_reversed(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder, "-reverse")
        assemble(dec, CHARS)
        assert dec.block_data(2) == bytes([0xE4, 0x39])

    def test_speed_error(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        dec.encoding.clkavg.t_bitspaceavg = 1.5 / (100 * 50)
        result = assemble(dec, CHARS)
        assert result.ww_speed_err == 1

class TestBlockmark():

    def test_queued(self, make_options, make_decoder):
        dec = decoder(make_options, make_decoder)
        enc = dec.encoding
        assert not enc.queued_block()
        enc.blockmark_queued = True
        dec.start_attempt()
        assert enc.queued_block()
        assert dec.result.blktype == BS_TAPEMARK
        assert not enc.blockmark_queued
