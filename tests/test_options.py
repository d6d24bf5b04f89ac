#!/usr/bin/env python3

'''
   Tests for command line options
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

import pytest

from readtape.base import errors
from readtape.base import options
from readtape.base.options import Options

class TestNumbers():

    def test_parse_number(self):
        assert options.parse_number("123") == 123
        assert options.parse_number("0x1F") == 31
        assert options.parse_number("0b101") == 5
        assert options.parse_number("017") == 15
        assert options.parse_number("0") == 0
        assert options.parse_number("12a") is None
        assert options.parse_number("") is None

    def test_chars_to_blank(self):
        assert options.get_chars_to_blank("-ntrks=9 file") == ("-ntrks=9", "file")
        assert options.get_chars_to_blank('-outf="a b" x') == ("-outf=a b", "x")
        assert options.get_chars_to_blank('"open') is None

class TestParse():

    def test_modes(self):
        opts = Options()
        assert opts.mode == options.PE
        assert opts.parse_option("-NRZI")
        assert opts.mode == options.NRZI
        assert opts.parse_option("-gcr")
        assert opts.mode == options.GCR
        assert opts.ips == 25
        assert opts.modename() == "GCR"

    def test_not_an_option(self):
        assert not Options().parse_option("basefile")

    def test_bad_option(self):
        with pytest.raises(errors.UsageError):
            Options().parse_option("-nonsense")

    def test_values(self):
        opts = Options()
        opts.parse_option("-ntrks=7")
        opts.parse_option("-bpi=556")
        opts.parse_option("-ips=0")
        opts.parse_option("-blklimit=0x10")
        assert opts.ntrks_specified == 7
        assert opts.bpi_specified == 556
        assert opts.ips_specified == 0
        assert opts.numblks_limit == 16

    def test_out_of_range(self):
        with pytest.raises(errors.UsageError):
            Options().parse_option("-ntrks=3")

    def test_parity(self):
        opts = Options()
        assert opts.specified_parity == 1
        opts.parse_option("-parity=0")
        assert opts.specified_parity == 0
        opts.parse_option("-parity=1")
        assert opts.specified_parity == 1
        opts.parse_option("-even")
        assert opts.specified_parity == 0
        with pytest.raises(errors.UsageError):
            opts.parse_option("-parity=2")

    def test_verbose_levels(self):
        opts = Options()
        opts.parse_option("-v3")
        assert opts.verbose
        assert opts.verbose_level == 3
        opts.parse_option("-d")
        assert opts.debug_level == 1

    def test_labels_and_log(self):
        opts = Options()
        opts.parse_option("-nolabels")
        opts.parse_option("-nolog")
        assert not opts.labels
        assert not opts.logging
        opts.parse_option("-l")
        assert opts.labels

    def test_textfile_implied(self):
        opts = Options()
        opts.parse_option("-hex")
        opts.parse_option("-EBCDIC")
        opts.finish_txtfile()
        assert opts.do_txtfile
        assert opts.txtfile_doboth()
        assert opts.txtfile_linesize == 32

    def test_skew_needs_ntrks(self):
        with pytest.raises(errors.UsageError):
            Options().parse_option("-skew=1,2,3")

    def test_skew(self):
        opts = Options()
        opts.parse_option("-ntrks=5")
        opts.parse_option("-skew=0,1,2,0,3")
        assert opts.skew_given
        assert opts.deskew
        assert opts.skew_delays[:5] == [0, 1, 2, 0, 3]

class TestTrackOrder():

    def test_nine_track(self):
        opts = Options()
        opts.parse_option("-order=p01234567")
        assert opts.ntrks == 9
        assert opts.head_to_trk[0] == 8
        assert opts.head_to_trk[1] == 0
        assert opts.trk_to_head[8] == 0

    def test_missing_track(self):
        with pytest.raises(errors.UsageError):
            Options().parse_option("-order=0123456p6")

    def test_whirlwind_needs_clock(self):
        opts = Options()
        opts.parse_option("-whirlwind")
        with pytest.raises(errors.UsageError):
            opts.parse_option("-order=LMlmxx")
