#!/usr/bin/env python3

'''
   Whirlwind I
   ~~~~~~~~~~~

   The tapes of the MIT Whirlwind computer carry a clock track and
   two data tracks, one for the most and one for the least significant
   bit of each 2-bit character, and usually an alternate copy of each.
   A one is a pulse: a flux change and the change back.

   Eight characters make a 16-bit word.  A block mark is a pulse on
   an LSB track with no clock.

   Blocks can be very close together, so the track state is kept from
   one block to the next.
'''

from ..base import errors
from ..base.decoder import Encoding
from ..base.options import (
    WW, FLUX_POS, FLUX_NEG, FLUX_AUTO, VL_WARNING_DETAIL,
    WWTRK_PRICLK, WWTRK_PRILSB, WWTRK_PRIMSB, WWTRK_ALTCLK, WWTRK_ALTLSB, WWTRK_ALTMSB,
    WWTRKTYPE_SYMBOLS, WWTRKTYPE_NAMES, WWHEAD_IGNORE,
)
from ..base.parmsets import (
    WW_CLKSTOP_BITS, WW_PEAKSCLOSE_BITS, WW_PEAKSFAR_BITS, WW_MAX_CLK_VARIATION,
)
from ..base.trackstate import ClockAverager, Result, BS_TAPEMARK, BS_BLOCK

CLOCK_TYPES = (WWTRK_PRICLK, WWTRK_ALTCLK)
LSB_TYPES = (WWTRK_PRILSB, WWTRK_ALTLSB)

# the data bit is missing on this track, but another one has it
BIT_MISSING = 2

class Whirlwind(Encoding):
    ''' Whirlwind I, 2-bit characters with a clock track '''

    name = "Whirlwind"
    mode = WW
    aliases = ["WW"]
    keeps_trackstate = True

    def __init__(self, dec):
        super().__init__(dec)
        self.clkavg = ClockAverager()
        self.flux_direction = FLUX_AUTO
        self.num_flux_polarity_changes = 0
        self.clear()

    def clear(self):
        self.datablock = False
        self.datacount = 0
        self.t_lastpeak = 0.0
        self.t_lastclkpulsestart = 0.0
        self.t_lastclkpulseend = 0.0
        self.t_lastpriclkpulsestart = 0.0
        self.t_lastpriclkpulseend = 0.0
        self.t_lastaltclkpulsestart = 0.0
        self.t_lastblockmark = 0.0
        self.blockmark_queued = False

    @property
    def bitspace(self):
        return self.clkavg.t_bitspaceavg

    def type_of(self, t):
        return self.dec.opts.ww_trk_to_type[t.trknum]

    def init_trackstate(self):
        self.clear()
        if not self.dec.doing_density_detection:
            self.clkavg.reset(self.dec.bitspace())

    def init_blockstate(self):
        ''' What we reset before each block, keeping peak heights and gains '''
        dec = self.dec
        dec.block.results[dec.block.parmset] = Result()
        for t in dec.tracks():
            t.max_agc_gain = 0.0
            t.min_agc_gain = float("inf")
            t.t_lastpeak = 0.0
            t.t_prevlastpeak = 0.0
        self.clkavg.reset(dec.bitspace())
        self.t_lastclkpulsestart = 0.0
        self.t_lastclkpulseend = 0.0
        self.t_lastpriclkpulseend = 0.0
        self.datablock = False
        self.datacount = 0
        # only ones are recorded
        dec.data[0] = 0

    def queued_block(self):
        ''' A block mark seen at the end of the last block '''
        if not self.blockmark_queued:
            return False
        self.blockmark()
        self.dec.block.t_blockstart = self.dec.timenow - self.bitspace
        return True

    def after_deskew(self):
        '''
           The deskew pass is the only chance to measure the peak
           heights, and then we go back to the start of the file.
        '''
        dec = self.dec
        dec.reset_windows()
        self.t_lastblockmark = 0.0
        self.blockmark_queued = False
        for t in dec.tracks():
            count = t.v_avg_height_count
            dec.compute_avg_height(t)
            dec.log.rlog(
                "  trk %d average peak height is %.2fV and AGC is %.2f, based on %d measurements\n",
                t.trknum, t.v_avg_height / 2, t.agc_gain, count
            )
        dec.log.rlog("\n")

    #################################################################
    # Data bits

    def chk_databit(self, clkendtime, wwtype, bitmask):
        '''
           0 if we don't have this track, 1 if a pulse started in the
           last bit time, BIT_MISSING if not.
        '''
        dec = self.dec
        trk = dec.opts.ww_type_to_trk[wwtype]
        if trk < 0:
            return 0
        errors.check(trk < dec.ntrks, "bad trk in chk_databit: %d", trk)
        t = dec.trkstate[trk]
        if clkendtime - self.bitspace < t.t_lastpulsestart < clkendtime:
            dec.data[self.datacount] |= bitmask
            return 1
        return BIT_MISSING

    def chk_databits(self, clkendtime):
        ''' A clock pulse ended: which data pulses started since the last one '''
        dec = self.dec
        result = dec.result
        for pri, alt, bitmask, name in (
            (WWTRK_PRIMSB, WWTRK_ALTMSB, 0x02, "MSB"),
            (WWTRK_PRILSB, WWTRK_ALTLSB, 0x01, "LSB"),
        ):
            got_pri = self.chk_databit(clkendtime, pri, bitmask)
            got_alt = self.chk_databit(clkendtime, alt, bitmask)
            if (got_pri | got_alt) == (1 | BIT_MISSING):
                # both tracks are there and they don't agree
                result.ww_missing_onebit += 1
                if dec.opts.verbose_level & VL_WARNING_DETAIL and not dec.doing_deskew:
                    missing = pri if got_pri == BIT_MISSING else alt
                    t = dec.trkstate[dec.opts.ww_type_to_trk[missing]]
                    dec.log.rlog(
                        "  missing %s %s at %.8f, last pulse end %.8f, bitspacing %.1f\n",
                        "primary" if missing == pri else "alternate", name,
                        clkendtime, t.t_lastpulseend, self.bitspace * 1e6
                    )
        dec.log.dlog("  ww data %3d: %d %d\n", self.datacount, dec.data[self.datacount] >> 1, dec.data[self.datacount] & 1)
        self.datacount += 1
        dec.data[self.datacount] = 0

    def assemble_data(self):
        ''' Pack the 2-bit characters into bytes, with a dummy parity bit '''
        dec = self.dec
        data = dec.data
        result = dec.result
        if self.datacount % 8 == 1 and self.datacount >= 9:
            del data[0]
            data.append(0)
            self.datacount -= 1
            result.ww_leading_clock = 1
        chars = [x & 0x03 for x in data[:self.datacount]]
        if dec.opts.reverse_tape:
            chars.reverse()
        octets = []
        for i in range(0, len(chars) - 3, 4):
            accum = (chars[i] << 6) | (chars[i + 1] << 4) | (chars[i + 2] << 2) | chars[i + 3]
            octets.append(accum << 1)
        data[:len(octets)] = octets
        result.minbits = result.maxbits = len(octets)
        if self.datacount % 8 != 0:
            # should be a multiple of 16 bit words
            result.ww_bad_length += 1
            if not dec.doing_deskew and self.datacount > 8:
                dec.log.rlog(
                    "  *** the datacount for the next block is %d 2-bit characters, which is %d more than a multiple of 8\n",
                    self.datacount, self.datacount % 8
                )
        target = dec.bitspace()
        if target and abs(self.bitspace - target) / target > WW_MAX_CLK_VARIATION:
            result.ww_speed_err += 1

    def end_of_block(self):
        dec = self.dec
        result = dec.result
        dec.set_expected_parity(0)
        dec.log.dlog(
            "end of block at %.8f, datalength %d, lastclkpulseend %.8f bitspaceavg %.1f\n",
            dec.timenow, self.datacount, self.t_lastclkpulseend, self.bitspace * 1e6
        )
        self.assemble_data()
        result.blktype = BS_BLOCK
        result.avg_bit_spacing = self.bitspace
        dec.agc_range()
        # a pulse on an LSB track after the clock stopped is the next block mark
        for wwtype in LSB_TYPES:
            trk = dec.opts.ww_type_to_trk[wwtype]
            if trk < 0:
                continue
            t = dec.trkstate[trk]
            if t.t_lastpulseend - self.t_lastclkpulseend > self.bitspace * WW_PEAKSCLOSE_BITS:
                self.blockmark_queued = True
                self.t_lastblockmark = t.t_lastpulseend
        if self.blockmark_queued:
            dec.log.dlog("blockmark at %.8f queued at %.8f\n", self.t_lastblockmark, dec.timenow)

    def force_end_of_block(self):
        return

    def after_tracks(self):
        ''' The clock stopped: end of block '''
        if (
            self.datablock
            and self.t_lastclkpulseend > 0
            and self.dec.timenow - self.t_lastclkpulseend > self.bitspace * WW_CLKSTOP_BITS
        ):
            self.end_of_block()

    def blockmark(self):
        self.dec.result.blktype = BS_TAPEMARK
        self.blockmark_queued = False

    #################################################################
    # Pulses

    def pulse_start(self, t, t_pulse_start):
        ''' The first half of a flux change pulse '''
        dec = self.dec
        wwtype = self.type_of(t)
        dec.adjust_agc(t)
        t.t_lastpulsestart = t_pulse_start
        if wwtype not in CLOCK_TYPES:
            return
        if not self.datablock:
            dec.block.t_blockstart = t_pulse_start
            self.datablock = True
        self.t_lastclkpulsestart = t_pulse_start
        if wwtype == WWTRK_PRICLK:
            self.t_lastpriclkpulsestart = t_pulse_start
        else:
            self.t_lastaltclkpulsestart = t_pulse_start
        if t_pulse_start - t.t_prevlastpeak < self.bitspace * WW_PEAKSFAR_BITS:
            dec.adjust_clock(self.clkavg, t_pulse_start - t.t_prevlastpeak)

    def pulse_end(self, t, t_pulse_end):
        ''' The second half of a flux change pulse '''
        dec = self.dec
        result = dec.result
        wwtype = self.type_of(t)
        if dec.doing_deskew:
            dec.accumulate_avg_height(t)
        dec.adjust_agc(t)
        t.t_lastpulseend = t_pulse_end

        if self.t_lastpriclkpulseend > 0:
            # skew statistics relative to the primary clock
            delta = t_pulse_end - self.t_lastpriclkpulseend
            bitspace = self.bitspace
            if -bitspace * 1.5 < delta < bitspace * 1.5:
                if delta < bitspace * 0.5:
                    delta += bitspace
                dec.record_peakstat(bitspace, delta, t.trknum)

        if wwtype in CLOCK_TYPES:
            if t_pulse_end - self.t_lastclkpulseend > self.bitspace * WW_PEAKSCLOSE_BITS:
                # not the other clock track's copy of the same pulse
                self.chk_databits(t_pulse_end)
            self.t_lastclkpulseend = t_pulse_end

        if wwtype == WWTRK_PRICLK:
            self.t_lastpriclkpulseend = t_pulse_end
            if 0 < self.t_lastaltclkpulsestart < t_pulse_end - self.bitspace:
                self.missing_clock("alternate", t_pulse_end, self.t_lastaltclkpulsestart)

        elif wwtype == WWTRK_ALTCLK:
            if 0 < self.t_lastpriclkpulsestart < t_pulse_end - self.bitspace:
                self.missing_clock("primary", t_pulse_end, self.t_lastpriclkpulsestart)

        elif wwtype in LSB_TYPES:
            if (
                self.t_lastclkpulsestart == 0
                and t_pulse_end - self.t_lastblockmark > self.bitspace
            ):
                # a pulse with no clock, and not near the last block mark
                self.t_lastblockmark = t_pulse_end
                dec.block.t_blockstart = t_pulse_end - self.bitspace / 2
                self.blockmark()

    def missing_clock(self, which, t_pulse_end, t_last):
        dec = self.dec
        dec.result.ww_missing_clock += 1
        if dec.opts.verbose_level & VL_WARNING_DETAIL and not dec.doing_deskew:
            dec.log.rlog(
                "  missing %s clk at %.8f, last clk %.8f, bitspacing %.1f\n",
                which, t_pulse_end, t_last, self.bitspace * 1e6
            )

    def set_flux_direction(self, trknum, direction):
        if self.flux_direction == direction:
            return
        if self.flux_direction != FLUX_AUTO:
            # the polarity changed in the middle of the tape
            self.num_flux_polarity_changes += 1
        self.flux_direction = direction
        self.dec.log.rlog(
            "  the flux direction was set to %s based on a peak on track %d at time %.8f\n\n",
            "negative" if direction == FLUX_NEG else "positive", trknum, self.dec.timenow
        )

    def peak(self, t, t_peak, is_top):
        requested = self.dec.opts.flux_direction
        if requested == FLUX_AUTO:
            if t_peak - self.t_lastpeak > self.bitspace * WW_PEAKSFAR_BITS:
                # the first peak after a quiet spell starts a pulse
                self.set_flux_direction(t.trknum, FLUX_POS if is_top else FLUX_NEG)
        else:
            self.flux_direction = requested
        self.t_lastpeak = t_peak
        errors.check(
            self.flux_direction in (FLUX_POS, FLUX_NEG),
            "bad flux direction %s at %.8f", self.flux_direction, self.dec.timenow
        )
        if (self.flux_direction == FLUX_POS) == is_top:
            self.pulse_start(t, t_peak)
        else:
            self.pulse_end(t, t_peak)

    def top(self, t):
        self.peak(t, t.t_top, True)

    def bot(self, t):
        self.peak(t, t.t_bot, False)

    def describe_tracks(self):
        ''' Log which head carries which kind of track '''
        opts = self.dec.opts
        log = self.dec.log
        log.rlog("  Whirlwind data has %d tracks from %d data heads assigned as follows:\n", opts.ntrks, opts.nheads)
        for tracktype, name in enumerate(WWTRKTYPE_NAMES):
            trk = opts.ww_type_to_trk[tracktype]
            if trk == -1:
                log.rlog("              there is no   %s, '%c'\n", name, WWTRKTYPE_SYMBOLS[tracktype])
            else:
                log.rlog(
                    "    track %d, head %d is the  %s, '%c'\n",
                    trk, opts.trk_to_head[trk], name, WWTRKTYPE_SYMBOLS[tracktype]
                )
        for head in range(opts.nheads):
            if opts.head_to_trk[head] == WWHEAD_IGNORE:
                log.rlog("             head %d is unused\n", head)
        log.rlog("  the initial peak polarity for each flux change %s\n", {
            FLUX_AUTO: "will be automatically determined for each block",
            FLUX_POS: "is expected to be positive",
            FLUX_NEG: "is expected to be negative",
        }[opts.flux_direction])

ALL = [
    Whirlwind,
]
