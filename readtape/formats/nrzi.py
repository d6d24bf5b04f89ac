#!/usr/bin/env python3

'''
   NRZI, 7 and 9 track
   ~~~~~~~~~~~~~~~~~~~

   A one is a flux transition, in either direction, a zero is the
   absence of one.  All tracks share a clock, which we reconstruct
   from the average position of the transitions across the tracks,
   and we decide about the zeros when a whole bit time passed without
   a transition in the window around the expected clock.

   A block ends with all-zero bits followed by a CRC character
   (9 track only) and an LRC character.  A tape mark is a single
   character followed by its own LRC.
'''

from ..base.decoder import Encoding, parity
from ..base.options import NRZI, MAXBLOCK, VL_TRACKLENGTHS
from ..base.trackstate import ClockAverager, BS_TAPEMARK, BS_NOISE, BS_BADBLOCK, BS_BLOCK

NRZI_IBG_SECS = 200e-6
NRZI_MIN_BLOCK = 10
NRZI_MAX_MISMATCH = 10
NRZI_BADTRK_FACTOR = 2.0
NRZI_POSTBLOCK_BITS = 8
AGC_STARTBASE = 5
AGC_ENDBASE = 15

class Nrzi(Encoding):
    ''' NRZI with a clock shared by all tracks '''

    name = "NRZI"
    mode = NRZI
    aliases = ["200", "556", "800"]

    def __init__(self, dec):
        super().__init__(dec)
        self.clkavg = ClockAverager()
        self.datablock = False
        self.t_lastclock = 0.0
        self.t_last_midbit = 0.0
        self.post_counter = 0

    def init_trackstate(self):
        self.datablock = False
        self.t_lastclock = 0.0
        self.t_last_midbit = 0.0
        self.post_counter = 0
        if not self.dec.doing_density_detection:
            self.clkavg.reset(self.dec.bitspace())

    @property
    def bitspace(self):
        return self.clkavg.t_bitspaceavg

    #################################################################
    # Bits

    def addbit(self, t, bit, t_bit):
        dec = self.dec
        parm = dec.parm
        t.t_lastbit = t_bit
        if t.datacount == 0:
            t.t_firstbit = t_bit
            t.max_agc_gain = t.agc_gain
        if not self.datablock:
            # the first transition of the block: fake the previous clock
            self.t_lastclock = t_bit - self.bitspace
            self.t_last_midbit = self.t_lastclock + parm.midbit * self.bitspace
            dec.log.dlog(
                "trk %d starts the data blk at %.8f, agc=%f, clkavg=%.2f\n",
                t.trknum, t_bit, t.agc_gain, self.bitspace * 1e6
            )
            dec.block.t_blockstart = dec.timenow
            self.datablock = True
        dec.set_bit(t.trknum, t.datacount, bit)
        dec.set_faked(t.trknum, t.datacount, False)
        dec.data_time[t.datacount] = t_bit
        if t.datacount < MAXBLOCK:
            t.datacount += 1
        if self.post_counter > 0 and bit:
            # a one at the end of a block must be the CRC or LRC
            if self.t_lastclock < t_bit - (2 - parm.midbit) * self.bitspace:
                self.t_lastclock = t_bit - 2 * self.bitspace

    def peak(self, t, t_peak):
        ''' A transition in either direction is a one '''
        dec = self.dec
        result = dec.result
        if self.t_lastclock != 0 and self.datablock and self.post_counter == 0:
            dec.record_peakstat(self.bitspace, t_peak - self.t_lastclock, t.trknum)
        if t_peak < self.t_last_midbit and self.post_counter == 0:
            dec.log.dlog(
                "---trk %d peak at %.8f is %.2f usec before midbit at %.8f, lastclock %.8f, AGC %.2f\n",
                t.trknum, t_peak, (self.t_last_midbit - t_peak) * 1e6,
                self.t_last_midbit, self.t_lastclock, t.agc_gain
            )
            result.missed_midbits += 1
        self.addbit(t, 1, t_peak)

    def top(self, t):
        dec = self.dec
        self.peak(t, t.t_top)
        if AGC_STARTBASE <= t.peakcount <= AGC_ENDBASE:
            dec.accumulate_avg_height(t, only_positive=False)
        elif t.peakcount > AGC_ENDBASE:
            if t.v_avg_height_count:
                dec.compute_avg_height(t)
            else:
                dec.adjust_agc(t)

    def bot(self, t):
        self.peak(t, t.t_bot)
        if t.peakcount > AGC_ENDBASE and t.v_avg_height_count == 0:
            self.dec.adjust_agc(t)

    #################################################################
    # The clock

    def before_tracks(self):
        if self.datablock and self.dec.timenow > self.t_lastclock + 2 * self.bitspace:
            self.zerocheck()

    def zerocheck(self):
        '''
           We're past where the next clock should have been.  Tracks
           with a peak in the window around it got a one, the others
           get a zero, and the clock moves to the average peak time.
        '''
        dec = self.dec
        parm = dec.parm
        numbits = 0
        numlaterbits = 0
        avg_pos = 0.0
        last_complete_byte = 0
        left_edge = self.t_last_midbit
        right_edge = self.t_lastclock + (1 + parm.midbit) * self.bitspace
        self.t_last_midbit = right_edge

        for t in dec.tracks():
            lastpeak_in_window = left_edge < t.t_lastpeak < right_edge
            prevlastpeak_in_window = left_edge < t.t_prevlastpeak < right_edge
            if lastpeak_in_window:
                avg_pos += t.t_lastpeak
                numbits += 1
                if prevlastpeak_in_window:
                    # two peaks in one window: one of them is noise
                    t.datacount -= 1
                    dec.log.dlog("   trk %d deleted 1-bit from noise peak at %.8f\n", t.trknum, t.t_lastpeak)
                last_complete_byte = t.datacount - 1
            elif prevlastpeak_in_window:
                avg_pos += t.t_prevlastpeak
                numbits += 1
                last_complete_byte = t.datacount - 2
            elif t.t_lastpeak > right_edge:
                # a later peak: put the zero before its one
                t.datacount -= 1
                self.addbit(t, 0, self.t_lastclock + self.bitspace)
                self.addbit(t, 1, t.t_lastpeak)
                numlaterbits += 1
            else:
                self.addbit(t, 0, self.t_lastclock + self.bitspace)

        if numbits > 0:
            if self.post_counter == 1:
                # the zeros were a bit error inside the block
                self.post_counter = 0
                dec.log.dlog("cancelling postcounter at %.8f\n", dec.timenow)
            avg_pos /= numbits
            expected_pos = self.t_lastclock + self.bitspace
            if not self.datablock or self.post_counter > 0:
                adjusted_pos = avg_pos
            else:
                adjusted_pos = expected_pos + parm.pulse_adj * (avg_pos - expected_pos)
            if self.post_counter == 0:
                dec.adjust_clock(self.clkavg, adjusted_pos - self.t_lastclock)
            self.t_lastclock = adjusted_pos
            if (
                dec.opts.correct
                and last_complete_byte >= 0
                and parity(dec.data[last_complete_byte]) != dec.expected_parity
            ):
                self.correct_error(last_complete_byte)
            if self.post_counter:
                self.post_counter += 1
        else:
            if numlaterbits == 0 and self.post_counter == 0:
                dec.log.dlog(
                    "start postcounter, trk 0 count %d at %.8f\n",
                    dec.trkstate[0].datacount, dec.timenow
                )
                self.post_counter = 1
            elif self.post_counter:
                self.post_counter += 1
            self.t_lastclock += self.bitspace

        if self.post_counter >= NRZI_POSTBLOCK_BITS:
            self.end_of_block()

    def correct_error(self, last_complete_byte):
        '''
           Blame a parity error on the track with the highest gain,
           if it is much higher than all the others.
        '''
        dec = self.dec
        result = dec.result
        highest = 0.0
        next_highest = 0.0
        badtrk = -1
        for t in dec.tracks():
            if t.agc_gain > highest:
                next_highest = highest
                highest = t.agc_gain
                badtrk = t.trknum
            elif t.agc_gain > next_highest:
                next_highest = t.agc_gain
        if badtrk < 0 or highest < NRZI_BADTRK_FACTOR * next_highest:
            return
        mask = 1 << (dec.ntrks - 1 - badtrk)
        dec.data[last_complete_byte] ^= mask
        dec.data_faked[last_complete_byte] |= mask
        result.corrected_bits += 1
        result.faked_tracks |= mask
        dec.log.dlog(
            "corrected track %d at byte %d because its AGC is %.2f and the next highest is %.2f, at %.8f\n",
            badtrk, last_complete_byte, highest, next_highest, dec.timenow
        )

    #################################################################
    # End of block

    def is_tapemark(self, result):
        data = self.dec.data
        if result.minbits != 9:
            return False
        if self.dec.ntrks == 9:
            return data[0] == 0x26 and data[8] == 0x26
        if self.dec.ntrks == 7:
            return data[0] == 0x1e and 0x1e in (data[3], data[4])
        return False

    def postprocess(self):
        '''
           A good looking block.  The bytes at the end are:

             minbits-  9   8   7   6     5    4      3   2   1
             9 track:  xx  00  00  crc?  crc  crc?   00  00  LRC
             7 track:  xx  00  00  lrc?  lrc  lrc?   00  00  00

           The ? entries are early and late positions we have seen.
        '''
        dec = self.dec
        data = dec.data
        result = dec.result
        result.blktype = BS_BLOCK
        result.vparity_errs = 0
        if result.minbits <= 8:
            return
        m = result.minbits
        if dec.ntrks == 9:
            result.crc = data[m - 6] | data[m - 5] | data[m - 4]
            result.lrc = data[m - 1]
        elif dec.ntrks == 7:
            result.lrc = data[m - 6] | data[m - 5] | data[m - 4]
        result.maxbits -= 8
        result.minbits -= 8
        dec.set_expected_parity(result.maxbits)

        crc = 0
        lrc = 0
        for i in range(result.minbits):
            if parity(data[i]) != dec.expected_parity:
                dec.log.dlog("parity err at index %d data %03X time %.8f\n", i, data[i], dec.data_time[i])
                result.vparity_errs += 1
            lrc ^= data[i]
            # C0..C7,P  (IBM Form A22-6862-4)
            crc ^= data[i]
            if crc & 2:
                crc ^= 0xf0
            lsb = crc & 1
            crc >>= 1
            if lsb:
                crc |= 0x100
        # all but C2 and C4 are inverted
        crc ^= 0x1af
        if dec.ntrks == 9:
            # the LRC includes the CRC
            lrc ^= crc
            if crc != result.crc:
                result.crc_errs += 1
                dec.log.dlog("crc is %03X, should be %03X\n", result.crc, crc)
        if lrc != result.lrc:
            result.lrc_errs += 1
            dec.log.dlog("lrc is %03X, should be %03X\n", result.lrc, lrc)

    def end_of_block(self):
        dec = self.dec
        if dec.block.endblock_done:
            return
        dec.block.endblock_done = True
        result = dec.result
        self.datablock = False
        result.minbits, result.maxbits = dec.track_lengths()
        result.avg_bit_spacing = dec.avg_bit_spacing()
        dec.agc_range()
        dec.log.dlog(
            "NRZI end of block, min %d max %d, avgbitspacing %f usec at %.8f\n",
            result.minbits, result.maxbits, result.avg_bit_spacing * 1e6, dec.timenow
        )
        if self.is_tapemark(result):
            result.blktype = BS_TAPEMARK
        elif result.maxbits <= NRZI_MIN_BLOCK:
            dec.log.dlog("   detected noise block of length %d at %.8f\n", result.maxbits, dec.timenow)
            result.blktype = BS_NOISE
        elif result.maxbits - result.minbits > NRZI_MAX_MISMATCH:
            if dec.opts.verbose_level & VL_TRACKLENGTHS:
                dec.log.rlog(
                    "*** trkmismatched block, lengths %s\n",
                    " ".join(str(t.datacount) for t in dec.tracks())
                )
            result.blktype = BS_BADBLOCK
            result.track_mismatch = result.maxbits - result.minbits
        else:
            self.postprocess()
        dec.num_trks_idle = dec.ntrks
        dec.interblock_counter = int(NRZI_IBG_SECS / dec.sample_deltat)

    def force_end_of_block(self):
        if self.datablock:
            self.end_of_block()

ALL = [
    Nrzi,
]
