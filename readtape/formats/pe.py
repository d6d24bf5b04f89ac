#!/usr/bin/env python3

'''
   1600 BPI Phase Encoding
   ~~~~~~~~~~~~~~~~~~~~~~~

   Every bit cell has a transition in its middle: up for a one and
   down for a zero, or the other way around if the signal is inverted.
   Between two equal bits there is an extra "clock" transition.

   A block starts with a preamble of zeros followed by a single one,
   and ends with a mirror image postamble.  Tracks are independent,
   each has its own clock.
'''

from ..base import errors
from ..base.decoder import Encoding
from ..base.options import PE, MAXBLOCK
from ..base.parmsets import PE_IDLE_FACTOR
from ..base.trackstate import BS_TAPEMARK, BS_NOISE, BS_BLOCK

PE_IBG_SECS = 200e-6
PE_IGNORE_POSTBITS = 5
PE_MIN_PREBITS = 70
PE_MAX_POSTBITS = 40
AGC_STARTBASE = 5
AGC_ENDBASE = 15

# Tracks which see a burst of transitions in a tape mark, and those which don't
TAPEMARK_BUSY = (0, 2, 5, 6, 7, 8)
TAPEMARK_QUIET = (1, 3, 4)

class PhaseEncoding(Encoding):
    ''' PE, 9 tracks at 1600 BPI '''

    name = "PE"
    mode = PE
    aliases = ["1600"]

    def __init__(self, dec):
        super().__init__(dec)
        self.warned_polarity = False

    def is_tapemark(self):
        trks = self.dec.trkstate
        if self.dec.ntrks != 9:
            return False
        for trk in TAPEMARK_BUSY:
            if trks[trk].datacount > 2 or trks[trk].peakcount <= 75:
                return False
        for trk in TAPEMARK_QUIET:
            if trks[trk].peakcount > 2:
                return False
        return True

    def strip_postamble(self, t):
        '''
           Remove the postamble: the zeros after the last data bit,
           and the one which precedes them.
        '''
        dec = self.dec
        result = dec.result
        mask = 1 << (dec.ntrks - 1 - t.trknum)
        for postamble_bits in range(PE_MAX_POSTBITS + 1):
            t.datacount -= 1
            if dec.data_faked[t.datacount] & mask:
                errors.check(
                    result.corrected_bits > 0,
                    "bad fake data count on trk %d at %.8f", t.trknum, dec.timenow
                )
                result.corrected_bits -= 1
                dec.log.dlog("   remove fake bit %d on track %d\n", t.datacount, t.trknum)
            if postamble_bits > PE_IGNORE_POSTBITS and dec.data[t.datacount] & mask:
                break
            if t.datacount == 0:
                break
        return postamble_bits

    def end_of_block(self):
        ''' All or most tracks went idle: a data block, a tape mark or noise '''
        dec = self.dec
        if dec.block.endblock_done:
            return
        dec.block.endblock_done = True
        result = dec.result

        if self.is_tapemark():
            result.blktype = BS_TAPEMARK
            return

        result.minbits = MAXBLOCK
        result.maxbits = 0
        avg_bit_spacing = 0.0
        for t in dec.tracks():
            if t.datacount > 0:
                avg_bit_spacing += (t.t_lastbit - t.t_firstbit) / t.datacount
                postamble_bits = self.strip_postamble(t)
                result.alltrk_max_agc_gain = max(result.alltrk_max_agc_gain, t.max_agc_gain)
                result.alltrk_min_agc_gain = min(result.alltrk_min_agc_gain, t.min_agc_gain)
                dec.log.dlog(
                    "trk %d had %d postamble bits, max AGC %5.2f, datacount %d\n",
                    t.trknum, postamble_bits, t.max_agc_gain, t.datacount
                )
            result.maxbits = max(result.maxbits, t.datacount)
            result.minbits = min(result.minbits, t.datacount)
        result.avg_bit_spacing = avg_bit_spacing / dec.ntrks
        dec.set_expected_parity(result.maxbits)

        if result.maxbits == 0:
            dec.log.dlog("   detected noise block at %.8f\n", dec.timenow)
            if not dec.doing_density_detection:
                result.blktype = BS_NOISE
            return

        result.blktype = BS_BLOCK
        dec.interblock_counter = int(PE_IBG_SECS / dec.sample_deltat)
        if result.minbits != result.maxbits:
            result.track_mismatch = result.maxbits - result.minbits
        result.vparity_errs = dec.count_parity_errors(result.minbits)

    def addbit(self, t, bit, faked, t_bit):
        dec = self.dec
        if t.t_lastbit == 0:
            t.t_lastbit = t_bit - dec.bitspace()
        if not t.datablock:
            return
        dec.log.dlog(
            "trk %d add %d to %3d bytes at %.8f, V=%.5f, AGC=%.2f\n",
            t.trknum, bit, t.datacount, t_bit, t.v_now, t.agc_gain
        )
        t.lastdatabit = bit
        if not t.idle and not faked:
            dec.adjust_clock(t.clkavg, t_bit - t.t_lastbit)
            t.t_clkwindow = t.clkavg.t_bitspaceavg / 2 * dec.parm.clk_factor
        t.t_lastbit = t_bit
        if t.datacount == 0:
            t.t_firstbit = t_bit
        dec.set_bit(t.trknum, t.datacount, bit)
        dec.set_faked(t.trknum, t.datacount, faked)
        if faked:
            dec.result.corrected_bits += 1
        dec.data_time[t.datacount] = t_bit
        if t.datacount < MAXBLOCK:
            t.datacount += 1

    def preamble_peak(self, t, is_top):
        dec = self.dec
        if t.peakcount == 1:
            # the first transition is a zero, and sets the polarity
            t.bit1_up = not is_top
            if not t.bit1_up and not self.warned_polarity:
                dec.log.rlog("*** NOTE: we detected reverse PE signal polarity, but we can handle it\n")
                self.warned_polarity = True
            dec.block.t_blockstart = dec.timenow
        t_peak = t.t_top if is_top else t.t_bot
        if (
            t.peakcount > PE_MIN_PREBITS
            and t.bit1_up == is_top
            and t_peak - t.t_lastpeak > t.t_clkwindow
        ):
            # a one after a missing clock: the data starts
            t.datablock = True
            errors.check(
                t.v_avg_height_count > 0,
                "no peak heights seen in the preamble on trk %d at %.8f", t.trknum, dec.timenow
            )
            t.v_avg_height = t.v_avg_height_sum / t.v_avg_height_count
            dec.log.dlog(
                "trk %d starts data at %.8f, AGC %.2f, clk window %f usec, avg peak-to-peak %.2fV\n",
                t.trknum, dec.timenow, t.agc_gain, t.t_clkwindow * 1e6, t.v_avg_height
            )
            errors.check(
                t.v_avg_height > 0,
                "avg peak-to-peak voltage isn't positive on trk %d at %.8f", t.trknum, dec.timenow
            )
        else:
            t.clknext = is_top != t.bit1_up
            if AGC_STARTBASE <= t.peakcount <= AGC_ENDBASE:
                dec.accumulate_avg_height(t)

    def data_peak(self, t, is_top, t_peak):
        dec = self.dec
        dec.record_peakstat(t.clkavg.t_bitspaceavg, t_peak - t.t_lastpeak, t.trknum)
        missed_transition = (t_peak + t.t_pulse_adj) - t.t_lastpeak > t.t_clkwindow
        if not t.clknext or missed_transition:
            bit = t.bit1_up if is_top else not t.bit1_up
            self.addbit(t, int(bit), False, t_peak)
            t.clknext = True
        else:
            t.clknext = False
        expected = t.clkavg.t_bitspaceavg / (1 if missed_transition else 2)
        t.t_pulse_adj = ((t_peak - t.t_lastpeak) - expected) * dec.parm.pulse_adj
        dec.adjust_agc(t)

    def top(self, t):
        if t.datablock:
            self.data_peak(t, True, t.t_top)
        else:
            self.preamble_peak(t, True)

    def bot(self, t):
        if t.datablock:
            self.data_peak(t, False, t.t_bot)
        else:
            self.preamble_peak(t, False)

    def leaving_idle(self, t):
        if t.datablock and t.datacount > 1:
            self.generate_fake_bits(t)

    def generate_fake_bits(self, t):
        ''' Fill a dropout with copies of the last bit seen on the track '''
        dec = self.dec
        numbits = int((dec.timenow - t.t_lastbit) / t.clkavg.t_bitspaceavg)
        if numbits <= 0:
            return
        dec.log.dlog(
            "trk %d adding %d fake bits to %d bits at %.8f, lastbit at %.8f, bitspaceavg=%.2f\n",
            t.trknum, numbits, t.datacount, dec.timenow, t.t_lastbit, t.clkavg.t_bitspaceavg * 1e6
        )
        for _i in range(numbits):
            self.addbit(t, t.lastdatabit, True, dec.timenow)
        t.t_lastbit = 0.0
        t.clknext = t.lastdatabit != 0

    def after_track(self, t):
        ''' A track without peaks for too long becomes idle '''
        dec = self.dec
        if (
            not t.idle
            and t.t_lastpeak != 0
            and dec.timenow - t.t_lastpeak > t.clkavg.t_bitspaceavg * PE_IDLE_FACTOR
        ):
            t.v_lastpeak = t.v_now
            dec.log.dlog(
                "trk %d became idle at %.8f, %d idle, AGC %.2f, datacount %d\n",
                t.trknum, dec.timenow, dec.num_trks_idle + 1, t.agc_gain, t.datacount
            )
            t.idle = True
            dec.num_trks_idle += 1
            if dec.num_trks_idle >= dec.ntrks:
                self.end_of_block()
        return False

ALL = [
    PhaseEncoding,
]
