#!/usr/bin/env python3

'''
   Per track and per block decoding state
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

from .options import MAXPARMSETS

CLKRATE_WINDOW = 50
AGC_MAX_WINDOW = 10
PKWW_MAX_WIDTH = 50
PKWW_PEAKHEIGHT = 4.0

# Block decoding outcomes
BS_NONE = 0
BS_TAPEMARK = 1
BS_NOISE = 2
BS_BADBLOCK = 3
BS_BLOCK = 4
BS_ABORTED = 5

BS_NAMES = ("BS_NONE", "BS_TAPEMARK", "BS_NOISE", "BS_BADBLOCK", "BS_BLOCK", "ABORTED")

class ClockAverager():
    '''
       Running estimate of the bit spacing.

       Either a moving window over the last clk_window deltas,
       an exponentially weighted average, or a constant.
    '''

    def __init__(self, init_avg=0.0):
        self.reset(init_avg)

    def reset(self, init_avg):
        self.t_bitspaceavg = init_avg
        self.bitndx = 0
        self.t_bitspacing = [init_avg] * CLKRATE_WINDOW

    def adjust(self, delta, clk_window, clk_alpha, constant):
        if clk_window > 0:
            olddelta = self.t_bitspacing[self.bitndx]
            self.t_bitspacing[self.bitndx] = delta
            self.bitndx += 1
            if self.bitndx >= clk_window:
                self.bitndx = 0
            self.t_bitspaceavg += (delta - olddelta) / clk_window
        elif clk_alpha > 0:
            self.t_bitspaceavg = clk_alpha * delta + (1 - clk_alpha) * self.t_bitspaceavg
        else:
            self.t_bitspaceavg = constant

    def force(self, delta):
        ''' Overwrite the whole history '''
        self.t_bitspacing = [delta] * CLKRATE_WINDOW
        self.t_bitspaceavg = delta

class TrackState():
    ''' Decoding state of one track '''

    def __init__(self, trknum):
        self.trknum = trknum
        self.reset()

    def __repr__(self):
        return "<TrackState %d peaks=%d bits=%d>" % (self.trknum, self.peakcount, self.datacount)

    def reset(self):
        self.v_last_raw = 0.0
        self.v_now = 0.0
        self.v_prev = 0.0

        self.v_top = 0.0
        self.t_top = 0.0
        self.v_lasttop = 0.0
        self.v_bot = 0.0
        self.t_bot = 0.0
        self.v_lastbot = 0.0
        self.t_lastbot = 0.0

        self.v_lastpeak = 0.0
        self.t_lastpeak = 0.0
        self.t_prevlastpeak = 0.0
        self.zerocross_up_pending = False
        self.zerocross_dn_pending = False
        self.t_firstzero = 0.0
        self.t_lastzero = 0.0
        self.t_peakdelta = 0.0
        self.t_peakdeltaprev = 0.0
        self.t_lastpulsestart = 0.0
        self.t_lastpulseend = 0.0

        self.pkww_v = [0.0] * PKWW_MAX_WIDTH
        self.pkww_minv = 0.0
        self.pkww_maxv = 0.0
        self.pkww_left = 0
        self.pkww_right = 0
        self.pkww_countdown = 0

        self.v_avg_height = PKWW_PEAKHEIGHT
        self.v_avg_height_sum = 0.0
        self.v_avg_height_count = 0
        self.agc_gain = 1.0
        self.max_agc_gain = 0.0
        self.min_agc_gain = float("inf")
        self.v_heights = [0.0] * AGC_MAX_WINDOW
        self.heightndx = 0

        self.t_lastbit = 0.0
        self.t_firstbit = 0.0
        self.t_lastclock = 0.0
        self.t_clkwindow = 0.0
        self.t_pulse_adj = 0.0
        self.bit1_up = False
        self.clkavg = ClockAverager()
        self.datacount = 0
        self.peakcount = 0
        self.lastdatabit = 0
        self.idle = True
        self.clknext = False
        self.datablock = False
        self.lastbits = 0
        self.resync_bitcount = 0

    def reset_window(self):
        self.pkww_left = 0
        self.pkww_right = 0
        self.pkww_minv = 0.0
        self.pkww_maxv = 0.0
        self.pkww_countdown = 0

    def window(self, width):
        ''' The current contents of the peak window, left to right '''
        ndx = self.pkww_left
        while True:
            yield self.pkww_v[ndx]
            if ndx == self.pkww_right:
                return
            ndx += 1
            if ndx >= width:
                ndx = 0

class Result():
    ''' What one parmset made of the block '''

    WARNINGS = (
        "missed_midbits",
        "corrected_bits",
        "gcr_bad_dgroups",
        "ww_leading_clock",
        "ww_missing_onebit",
        "ww_missing_clock",
    )

    ERRORS = (
        "track_mismatch",
        "vparity_errs",
        "ecc_errs",
        "crc_errs",
        "lrc_errs",
        "gcr_bad_sequence",
        "ww_bad_length",
        "ww_speed_err",
    )

    def __init__(self):
        self.blktype = BS_NONE
        self.minbits = 0
        self.maxbits = 0
        self.avg_bit_spacing = 0.0
        self.warncount = 0
        self.errcount = 0
        for i in self.WARNINGS + self.ERRORS:
            setattr(self, i, 0)
        self.faked_tracks = 0
        self.first_error = 0
        self.crc = 0
        self.lrc = 0
        self.alltrk_max_agc_gain = 0.0
        self.alltrk_min_agc_gain = float("inf")
        self.checksum = None

    def __repr__(self):
        return "<Result %s %d-%d err=%d warn=%d>" % (
            BS_NAMES[self.blktype], self.minbits, self.maxbits, self.errcount, self.warncount
        )

    def tally(self):
        ''' Sum up the errors and the warnings '''
        self.errcount = sum(getattr(self, i) for i in self.ERRORS)
        self.warncount = sum(getattr(self, i) for i in self.WARNINGS)

    def perfect(self):
        return self.blktype == BS_BLOCK and self.errcount == 0 and self.warncount == 0

class Block():
    ''' The decoding attempts for one block '''

    def __init__(self):
        self.tries = 0
        self.parmset = 0
        self.window_set = False
        self.endblock_done = False
        self.t_blockstart = 0.0
        self.results = [Result() for i in range(MAXPARMSETS)]

    def reset_results(self):
        self.results = [Result() for i in range(MAXPARMSETS)]

    @property
    def result(self):
        return self.results[self.parmset]
