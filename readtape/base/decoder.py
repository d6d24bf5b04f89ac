#!/usr/bin/env python3

'''
   Turning samples into transitions
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

   The Decoder owns everything one decoding attempt of a block needs:
   the per track state, the data being assembled, the current parmset
   and the encoding which interprets the transitions.

   Transitions are found either as peaks, using a moving window over
   the last few samples, or as zero crossings.
'''

from . import errors
from . import stats
from .options import MAXTRKS, MAXBLOCK
from .trackstate import (
    TrackState, Block, Result,
    PKWW_MAX_WIDTH, PKWW_PEAKHEIGHT, BS_NONE, BS_ABORTED,
)
from .parmsets import ZEROCROSS_PEAK, ZEROCROSS_SLOPE, PEAK_THRESHOLD, AGC_MAX_VALUE

DIFFERENTIATE_THRESHOLD = 0.05
DIFFERENTIATE_SCALE = 0.4

def parity(val):
    ''' 1 if an odd number of bits are set '''
    return bin(val).count("1") & 1

class Encoding():
    '''
       What to do with the transitions on the tracks.

       Each tape format subclasses this.
    '''

    name = "?"
    mode = None

    # True if the track state survives from one block to the next
    keeps_trackstate = False

    def __init__(self, dec):
        self.dec = dec

    def __repr__(self):
        return "<%s>" % self.name

    def init_trackstate(self):
        ''' Called whenever the track state is reset '''
        return

    def init_blockstate(self):
        ''' Called at the start of every attempt if keeps_trackstate '''
        return

    def queued_block(self):
        ''' True if the result of the next block is already known '''
        return False

    def after_deskew(self):
        ''' The deskew pass is done and we are back at the start '''
        return

    def describe_tracks(self):
        ''' Log the layout of the tracks '''
        opts = self.dec.opts
        order = []
        for head in range(opts.ntrks):
            trk = opts.head_to_trk[head]
            order.append("p" if trk == opts.ntrks - 1 else str(trk))
            if trk == 0:
                order.append("(msb)")
            if trk == opts.ntrks - 2:
                order.append("(lsb)")
        self.dec.log.rlog("  input data order: %s\n", "".join(order))

    def top(self, t):
        raise NotImplementedError

    def bot(self, t):
        raise NotImplementedError

    def end_of_block(self):
        raise NotImplementedError

    def force_end_of_block(self):
        ''' The input ended while a block might be in progress '''
        self.end_of_block()

    def before_tracks(self):
        ''' Called for every sample before the tracks are looked at '''
        return

    def after_track(self, t):
        ''' Called for every track of every sample, True to stop looking '''
        return False

    def after_tracks(self):
        ''' Called for every sample after the tracks were looked at '''
        return

    def leaving_idle(self, t):
        ''' The first transition after a track went idle '''
        return

class Decoder():
    ''' The state of one decoding attempt of one block '''

    def __init__(self, opts, log, parmsets, sample_deltat):
        self.opts = opts
        self.log = log
        self.parmsets = parmsets
        self.mode = opts.mode
        self.ntrks = opts.ntrks
        self.sample_deltat = sample_deltat
        self.timenow = 0.0
        self.samples_per_bit = 20

        self.trkstate = [TrackState(i) for i in range(MAXTRKS)]
        self.block = Block()
        self.data = [0] * (MAXBLOCK + 1)
        self.data_faked = [0] * (MAXBLOCK + 1)
        self.data_time = [0.0] * (MAXBLOCK + 1)

        self.pkww_width = 8
        self.interblock_counter = 0
        self.expected_parity = opts.specified_parity
        self.num_trks_idle = self.ntrks

        self.skew = stats.Skew(self.ntrks, sample_deltat, log, opts.quiet)
        self.peakstats = stats.PeakStats(self.mode, self.ntrks, opts.adjdeskew)
        self.estden = stats.DensityEstimator()
        self.doing_density_detection = False
        self.doing_deskew = False

        self.encoding = None

    def __repr__(self):
        return "<Decoder %s %d trks at %.8f>" % (self.opts.modename(), self.ntrks, self.timenow)

    @property
    def bpi(self):
        return self.opts.bpi

    @property
    def ips(self):
        return self.opts.ips

    @property
    def parm(self):
        return self.parmsets[self.block.parmset]

    @property
    def result(self):
        return self.block.result

    def tracks(self):
        return self.trkstate[:self.ntrks]

    def bitspace(self):
        ''' The nominal time between bits '''
        if not self.bpi or not self.ips:
            return 0.0
        return 1 / (self.bpi * self.ips)

    def attach(self, encoding_class):
        self.encoding = encoding_class(self)
        return self.encoding

    def init_blockstate(self):
        ''' Forget the results of all attempts at the last block '''
        for pset in self.parmsets:
            errors.check(
                pset.active == 0 or pset.id == "PRM",
                "bad parm block initialization"
            )
        self.block.reset_results()

    def reset_windows(self):
        ''' Also used by Whirlwind when we move back in the file '''
        self.skew.reset_fifos()
        self.block.window_set = False
        self.block.endblock_done = False
        for t in self.tracks():
            t.reset_window()

    def init_trackstate(self):
        ''' Get ready for a new decoding attempt of a block '''
        self.num_trks_idle = self.ntrks
        self.block.window_set = False
        self.block.endblock_done = False
        self.expected_parity = self.opts.specified_parity
        self.reset_windows()
        self.block.results[self.block.parmset] = Result()
        for t in self.tracks():
            t.reset()
            if not self.doing_density_detection:
                t.clkavg.reset(self.bitspace())
            t.t_clkwindow = t.clkavg.t_bitspaceavg / 2 * self.parm.clk_factor
        self.encoding.init_trackstate()

    def start_attempt(self):
        if self.encoding.keeps_trackstate:
            self.encoding.init_blockstate()
        else:
            self.init_trackstate()

    def set_expected_parity(self, blklength):
        if blklength > 0 and blklength == self.opts.revparity:
            self.expected_parity = 1 - self.opts.specified_parity
        else:
            self.expected_parity = self.opts.specified_parity

    def set_window_width(self):
        ''' The peak detection window spans a fraction of a bit '''
        if self.bpi:
            self.pkww_width = min(
                PKWW_MAX_WIDTH,
                int(self.parm.pkww_bitfrac / (self.bpi * self.ips * self.sample_deltat))
            )
        else:
            self.pkww_width = 8
        self.block.window_set = True

    #################################################################
    # Clock and gain

    def adjust_clock(self, clkavg, delta):
        ''' Update a bit spacing estimate with a new measurement '''
        parm = self.parm
        if parm.clk_window <= 0 and parm.clk_alpha <= 0:
            errors.check(self.bpi > 0, "bpi=0 in adjust_clock at %.8f", self.timenow)
        clkavg.adjust(delta, parm.clk_window, parm.clk_alpha, self.bitspace())

    def accumulate_avg_height(self, t, only_positive=True):
        ''' Add the last peak-to-peak height to the starting average '''
        if only_positive and t.v_top <= t.v_bot:
            return
        height = t.v_top - t.v_bot
        t.v_avg_height_sum += height
        t.v_avg_height_count += 1
        t.v_heights[t.heightndx] = height
        t.heightndx += 1
        if t.heightndx >= self.parm.agc_window:
            t.heightndx = 0

    def compute_avg_height(self, t):
        if t.v_avg_height_count:
            t.v_avg_height = t.v_avg_height_sum / t.v_avg_height_count
            self.log.dlog(
                "trk %d avg peak-to-peak after %d transitions is %.2fV at %.8f\n",
                t.trknum, t.v_avg_height_count, t.v_avg_height, self.timenow
            )
            errors.check(t.v_avg_height > 0, "avg peak-to-peak voltage isn't positive")
            t.v_avg_height_count = 0
            t.v_avg_height_sum = 0.0

    def set_gain(self, t, gain):
        gain = min(gain, AGC_MAX_VALUE)
        t.agc_gain = gain
        t.max_agc_gain = max(t.max_agc_gain, gain)
        t.min_agc_gain = min(t.min_agc_gain, gain)

    def adjust_agc(self, t):
        '''
           Automatic gain control, from either an exponential average
           of the peak to peak heights or the smallest of the last few.
        '''
        if self.opts.find_zeros:
            return
        parm = self.parm
        errors.check(
            not parm.agc_window or not parm.agc_alpha,
            "inconsistent AGC parameters in parmset %d", self.block.parmset
        )
        lastheight = t.v_lasttop - t.v_lastbot
        if parm.agc_alpha:
            if lastheight > 0:
                gain = t.v_avg_height / lastheight
                self.set_gain(t, parm.agc_alpha * gain + (1 - parm.agc_alpha) * t.agc_gain)
        if parm.agc_window and lastheight > 0:
            t.v_heights[t.heightndx] = lastheight
            t.heightndx += 1
            if t.heightndx >= parm.agc_window:
                t.heightndx = 0
            minheight = min(t.v_heights[:parm.agc_window])
            if minheight > 0:
                self.set_gain(t, t.v_avg_height / minheight)
            else:
                self.set_gain(t, AGC_MAX_VALUE)

    def record_peakstat(self, bitspacing, peaktime, trknum):
        self.peakstats.record(bitspacing, peaktime, trknum)

    #################################################################
    # Transitions

    def process_transition(self, t):
        t.peakcount += 1
        if t.idle:
            self.num_trks_idle -= 1
            t.idle = False
            self.encoding.leaving_idle(t)

    def density_transition(self, delta):
        if self.estden.transition(delta):
            self.result.blktype = BS_ABORTED

    def process_up_transition(self, t):
        self.process_transition(t)
        if self.doing_density_detection:
            self.density_transition(t.t_top - t.t_lastpeak)
        else:
            self.encoding.top(t)
        t.v_lasttop = t.v_top
        t.v_lastpeak = t.v_top
        t.t_prevlastpeak = t.t_lastpeak
        t.t_lastpeak = t.t_top

    def process_down_transition(self, t):
        self.process_transition(t)
        if self.doing_density_detection:
            self.density_transition(t.t_bot - t.t_lastpeak)
        else:
            self.encoding.bot(t)
        t.v_lastbot = t.v_bot
        t.t_lastbot = t.t_bot
        t.v_lastpeak = t.v_bot
        t.t_prevlastpeak = t.t_lastpeak
        t.t_lastpeak = t.t_bot

    def lookfor_zerocrossing(self, t):
        ''' A transition is a zero crossing after a big enough excursion '''
        now = self.timenow
        if t.v_now > 0:
            t.zerocross_dn_pending = False
            if t.v_top < t.v_now:
                t.v_top = t.v_now
                if t.zerocross_up_pending and t.v_top > ZEROCROSS_PEAK:
                    if t.t_top == 0:
                        t.t_top = now
                    t.zerocross_up_pending = False
                    t.v_bot = 0.0
                    if now - t.t_top <= t.clkavg.t_bitspaceavg * ZEROCROSS_SLOPE:
                        self.process_up_transition(t)
            if t.v_prev < 0 and t.v_bot < -ZEROCROSS_PEAK:
                t.t_top = now
                t.zerocross_up_pending = True
        elif t.v_now < 0:
            t.zerocross_up_pending = False
            if t.v_bot > t.v_now:
                t.v_bot = t.v_now
                if t.zerocross_dn_pending and t.v_bot < -ZEROCROSS_PEAK:
                    if t.t_bot == 0:
                        t.t_bot = now
                    t.zerocross_dn_pending = False
                    t.v_top = 0.0
                    if now - t.t_bot <= t.clkavg.t_bitspaceavg * ZEROCROSS_SLOPE:
                        self.process_down_transition(t)
            if t.v_prev > 0 and t.v_top > ZEROCROSS_PEAK:
                t.t_bot = now
                t.zerocross_dn_pending = True
        t.v_prev = t.v_now

    def lookfor_differentiated_zerocrossing(self, t):
        '''
           For differentiated data the zero crossings are the peaks.
           A run of exact zeros is timed at its center.
        '''
        now = self.timenow
        if t.v_now > 0:
            t.v_top = max(t.v_top, t.v_now)
            if t.zerocross_up_pending:
                if t.t_firstzero > 0:
                    t.t_top = (t.t_firstzero + t.t_lastzero) / 2
                else:
                    t.t_top = now - self.sample_deltat / 2
                t.zerocross_up_pending = False
                t.t_firstzero = 0.0
                self.process_up_transition(t)
            if t.v_now > ZEROCROSS_PEAK:
                t.zerocross_dn_pending = True
                t.t_firstzero = 0.0
                t.v_bot = 0.0
        elif t.v_now < 0:
            t.v_bot = min(t.v_bot, t.v_now)
            if t.zerocross_dn_pending:
                if t.t_firstzero > 0:
                    t.t_bot = (t.t_firstzero + t.t_lastzero) / 2
                else:
                    t.t_bot = now - self.sample_deltat / 2
                t.zerocross_dn_pending = False
                t.t_firstzero = 0.0
                self.process_down_transition(t)
            if t.v_now < -ZEROCROSS_PEAK:
                t.zerocross_up_pending = True
                t.t_firstzero = 0.0
                t.v_top = 0.0
        else:
            t.t_lastzero = now
            if t.t_firstzero == 0:
                t.t_firstzero = now

    def refine_peak(self, t, val, top):
        '''
           Where in time the peak is.  If a neighbor is almost as
           extreme, the peak is taken to be half a sample toward it.
        '''
        width = self.pkww_width
        left_distance = 1
        prevndx = -1
        ndx = t.pkww_left
        while True:
            if t.pkww_v[ndx] == val:
                errors.check(
                    left_distance < width,
                    "trk %d peak of %.3fV is at right edge, ndx=%d", t.trknum, val, ndx
                )
                errors.check(
                    prevndx != -1,
                    "trk %d peak of %.3fV is at left edge, ndx=%d", t.trknum, val, ndx
                )
                nextndx = ndx + 1
                if nextndx >= width:
                    nextndx = 0
                prev = t.pkww_v[prevndx]
                nxt = t.pkww_v[nextndx]
                adjustment = 0.0
                if top:
                    close = val - PEAK_THRESHOLD / t.agc_gain
                    if prev > close and nxt < close:
                        adjustment = -0.5
                    elif nxt > close and prev < close:
                        adjustment = 0.5
                else:
                    close = val + PEAK_THRESHOLD / t.agc_gain
                    if prev < close and nxt > close:
                        adjustment = -0.5
                    elif nxt < close and prev > close:
                        adjustment = 0.5
                t.pkww_countdown = left_distance
                return self.timenow - ((width - left_distance) - adjustment) * self.sample_deltat
            left_distance += 1
            if ndx == t.pkww_right:
                break
            prevndx = ndx
            ndx += 1
            if ndx >= width:
                ndx = 0
        raise errors.DecodeAssertion(
            "Can't find max or min %f in trk %d window at time %.8f", val, t.trknum, self.timenow
        )

    def lookfor_peak(self, t):
        '''
           Slide the window one sample to the right.  A peak is a max
           (or min) that rises (or falls) enough above both edges.
        '''
        width = self.pkww_width
        old_left = None
        t.pkww_right += 1
        if t.pkww_right >= width:
            t.pkww_right = 0
        if t.pkww_right == t.pkww_left:
            old_left = t.pkww_v[t.pkww_left]
            t.pkww_left += 1
            if t.pkww_left >= width:
                t.pkww_left = 0
        t.pkww_v[t.pkww_right] = t.v_now
        if t.v_now > t.pkww_maxv:
            t.pkww_maxv = t.v_now
        elif t.v_now < t.pkww_minv:
            t.pkww_minv = t.v_now
        if old_left is not None and old_left in (t.pkww_maxv, t.pkww_minv):
            window = list(t.window(width))
            t.pkww_maxv = max(window)
            t.pkww_minv = min(window)

        if t.pkww_countdown:
            t.pkww_countdown -= 1
            return

        errors.check(t.agc_gain > 0, "AGC gain bad in lookfor_peak: %.2f", t.agc_gain)
        scale = (t.v_avg_height / PKWW_PEAKHEIGHT) / t.agc_gain
        required_rise = self.parm.pkww_rise * scale
        required_min = self.parm.min_peak * scale
        left = t.pkww_v[t.pkww_left]
        right = t.pkww_v[t.pkww_right]
        if (
            t.pkww_maxv > left + required_rise
            and t.pkww_maxv > right + required_rise
            and (required_min == 0 or t.pkww_maxv > required_min)
        ):
            t.v_top = t.pkww_maxv
            t.t_top = self.refine_peak(t, t.pkww_maxv, True)
            self.log.dlog(
                "trk %d top of %.3fV, req rise %.3f, AGC %.2f at %.8f, found %.8f\n",
                t.trknum, t.v_top, required_rise, t.agc_gain, t.t_top, self.timenow
            )
            self.process_up_transition(t)
        elif (
            t.pkww_minv < left - required_rise
            and t.pkww_minv < right - required_rise
            and (required_min == 0 or t.pkww_minv < -required_min)
        ):
            t.v_bot = t.pkww_minv
            t.t_bot = self.refine_peak(t, t.pkww_minv, False)
            self.log.dlog(
                "trk %d bot of %.3fV, req rise %.3f, AGC %.2f at %.8f, found %.8f\n",
                t.trknum, t.v_bot, required_rise, t.agc_gain, t.t_bot, self.timenow
            )
            self.process_down_transition(t)

    #################################################################
    # Samples

    def differentiate(self, t, voltage):
        ''' Delta between successive samples, with small changes ignored '''
        delta = voltage - t.v_last_raw
        if -DIFFERENTIATE_THRESHOLD < delta < DIFFERENTIATE_THRESHOLD:
            delta = 0.0
        t.v_last_raw = voltage
        return delta * DIFFERENTIATE_SCALE * self.samples_per_bit

    def process_sample(self, sample):
        '''
           Look at the next sample on all tracks.
           Returns the block status, BS_NONE while the block isn't done.
        '''
        self.timenow = sample.time
        for t in self.tracks():
            voltage = sample.voltages[t.trknum]
            if self.opts.differentiate:
                voltage = self.differentiate(t, voltage)
            t.v_now = self.skew.delay(t.trknum, voltage)

        if not self.interblock_counter:
            self.look_at_tracks()

        if self.interblock_counter:
            self.interblock_counter -= 1
            if self.interblock_counter:
                return BS_NONE
        return self.result.blktype

    def look_at_tracks(self):
        self.encoding.before_tracks()
        for t in self.tracks():
            if t.t_lastpeak == 0:
                # first sample of the block on this track
                t.reset_window()
                t.pkww_v[0] = t.v_now
                t.pkww_maxv = t.pkww_minv = t.v_now
                t.v_lastpeak = t.v_now
                t.t_lastpeak = self.timenow
                continue
            if not self.opts.find_zeros:
                self.lookfor_peak(t)
            elif self.opts.differentiate:
                self.lookfor_differentiated_zerocrossing(t)
            else:
                self.lookfor_zerocrossing(t)
            if self.encoding.after_track(t):
                return
        self.encoding.after_tracks()

    def force_end_of_block(self):
        self.encoding.force_end_of_block()

    #################################################################
    # Block data

    def agc_range(self):
        ''' Fold the track gains into the block result '''
        result = self.result
        for t in self.tracks():
            result.alltrk_max_agc_gain = max(result.alltrk_max_agc_gain, t.max_agc_gain)
            result.alltrk_min_agc_gain = min(result.alltrk_min_agc_gain, t.min_agc_gain)

    def track_lengths(self):
        ''' The smallest and largest number of bits on any track '''
        counts = [t.datacount for t in self.tracks()]
        return min(counts), max(counts)

    def avg_bit_spacing(self):
        ''' Average over the tracks of the time per bit '''
        total = 0.0
        for t in self.tracks():
            if t.datacount > 0:
                total += (t.t_lastbit - t.t_firstbit) / t.datacount
        return total / self.ntrks

    def set_bit(self, trknum, ndx, bit):
        ''' Set or clear one track's bit in data[ndx] '''
        errors.check(ndx < MAXBLOCK, "block too big at trk %d", trknum)
        mask = 1 << (self.ntrks - 1 - trknum)
        if bit:
            self.data[ndx] |= mask
        else:
            self.data[ndx] &= ~mask

    def set_faked(self, trknum, ndx, faked):
        mask = 1 << (self.ntrks - 1 - trknum)
        if faked:
            self.data_faked[ndx] |= mask
        else:
            self.data_faked[ndx] &= ~mask

    def count_parity_errors(self, length):
        ''' Number of bytes with the wrong vertical parity '''
        errs = 0
        for i in range(length):
            if parity(self.data[i]) != self.expected_parity:
                errs += 1
        return errs

    def block_data(self, length):
        ''' The data bytes, parity bit dropped or moved to the top '''
        retval = bytearray(length)
        for i in range(length):
            b = self.data[i] >> 1
            if self.opts.add_parity:
                b |= (self.data[i] & 1) << (self.ntrks - 1)
            retval[i] = b & 0xff
        return bytes(retval)

    def count_faked_bits(self, length):
        return sum(bin(x).count("1") for x in self.data_faked[:length])

    def count_faked_tracks(self, length):
        tracks = 0
        for x in self.data_faked[:length]:
            tracks |= x
        return bin(tracks).count("1")
