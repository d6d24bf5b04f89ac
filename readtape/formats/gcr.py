#!/usr/bin/env python3

'''
   6250 BPI Group Coded Recording
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

   ANSI X3.54.  Each track is NRZI, with its own clock, and every four
   data bits are recorded as a five bit "storage group" chosen so that
   there are never more than two zeros in a row.

   The raw storage groups of all tracks are collected first, then
   postprocess() walks the block: preamble, data groups of seven data
   bytes and an ECC byte, the occasional resync burst, the residual
   group, the CRC group and the postamble.
'''

from ..base.decoder import Encoding, parity
from ..base.options import GCR, MAXBLOCK, VL_ATTEMPTS, VL_TRACKLENGTHS
from ..base.parmsets import GCR_IDLE_THRESH
from ..base.trackstate import BS_TAPEMARK, BS_NOISE, BS_BADBLOCK, BS_BLOCK

from . import gcr_ecc

GCR_IBG_SECS = 200e-6
AGC_STARTBASE = 5
AGC_ENDBASE = 15

GCR_MARK1 = 0b00111
GCR_MARK2 = 0b11100
GCR_SYNC = 0b11111
GCR_TERML1 = 0b10101
GCR_TERML0 = 0b10100
GCR_SECOND1 = 0b01111
GCR_SECOND2 = 0b11110

# 5 bit storage code to 4 bit data; 16 + n for invalid codes, where
# n is the closest valid value
GCR_DATAMAP = (
    16 + 10, 16 + 9, 16 + 2, 16 + 3, 16 + 5, 16 + 5, 16 + 6,
    16 + 7, 16 + 10, 9, 10, 11, 16 + 13, 13, 14,
    15, 16 + 2, 16 + 5, 2, 3, 16 + 5, 5,
    6, 7, 16 + 0, 0, 8, 1, 16 + 12, 4, 12, 16 + 15,
)

GCR_SGROUP_NAMES = (
    "bad0", "bad1", "bad2", "bad3", "bad4", "bad5", "bad6",
    "MARK1", "bad8", "9", "10", "11", "bad12", "13", "14",
    "SEC1/15", "bad16", "bad17", "2", "3", "TERML0", "TERML1/5",
    "6", "7", "bad24", "0", "8", "1", "MARK2", "4", "SEC2/12",
    "SYNC",
)

# the reverse of GCR_DATAMAP for the valid codes
GCR_ENCODE = {v: k for k, v in enumerate(GCR_DATAMAP) if v < 16}

# special subgroups are recognized on this track
MASTER_TRACK = 0

# tracks which are busy and quiet in a tape mark
TAPEMARK_BUSY = (0, 2, 5, 6, 7, 8)
TAPEMARK_QUIET = (1, 3, 4)

ST_PREAMBLE = "preamble"
ST_DATA_A = "data_A"
ST_DATA_B = "data_B"
ST_RESYNC = "resync"
ST_RESIDUAL_A = "residual_A"
ST_RESIDUAL_B = "residual_B"
ST_CRC_A = "crc_A"
ST_CRC_B = "crc_B"
ST_POSTAMBLE = "postamble"

class GroupCodedRecording(Encoding):
    ''' GCR, 9 tracks at 6250 BPI '''

    name = "GCR"
    mode = GCR
    aliases = ["6250"]

    def __init__(self, dec):
        super().__init__(dec)
        self.bitnum = 0
        self.bytenum = 0
        self.sgroups = [0] * 9
        self.bad_parity_in_dgroup = 0

    def init_trackstate(self):
        self.bitnum = 0
        self.bytenum = 0
        self.dec.result.first_error = -1

    #################################################################
    # Bits

    def addbit(self, t, bit, t_bit):
        dec = self.dec
        t.t_lastbit = t_bit
        if t.datacount == 0:
            dec.block.t_blockstart = t_bit
            t.t_firstbit = t_bit
            t.max_agc_gain = t.agc_gain
        if not t.datablock:
            t.t_lastclock = t_bit - t.clkavg.t_bitspaceavg
            dec.log.dlog(
                "trk %d starts a data blk with %d at %.8f, agc=%f, clkavg=%.2f\n",
                t.trknum, bit, t_bit, t.agc_gain, t.clkavg.t_bitspaceavg * 1e6
            )
            t.datablock = True
        dec.set_bit(t.trknum, t.datacount, bit)
        dec.set_faked(t.trknum, t.datacount, False)
        dec.data_time[t.datacount] = t_bit
        if t.datacount < MAXBLOCK:
            t.datacount += 1

        t.lastbits = (t.lastbits << 1) | bit
        if t.datacount % 5 == 0:
            if t.lastbits & 0x1f == GCR_MARK2:
                t.resync_bitcount = 1
            if t.lastbits & 0x1f == GCR_MARK1 and t.resync_bitcount > 0:
                t.resync_bitcount = 0
        if t.resync_bitcount > 0:
            # in the middle of a resync burst the clock is exact
            if t.resync_bitcount == 5:
                t.clkavg.force(t.t_peakdelta)
            t.resync_bitcount += 1

    def checkzeros(self, t, delta):
        '''
           Add the zeros implied by the time since the last peak.
           Returns the number of bits, including the one for the peak.
        '''
        dec = self.dec
        parm = dec.parm
        numbits = 1
        if not t.datablock:
            return numbits
        bitspace = t.clkavg.t_bitspaceavg
        t.t_peakdeltaprev = t.t_peakdelta
        t.t_peakdelta = delta
        if delta - t.t_pulse_adj > parm.z1pt * bitspace:
            numbits += 1
            zerobitloc = t.t_lastpeak + bitspace
            self.addbit(t, 0, zerobitloc)
            if delta - t.t_pulse_adj > parm.z2pt * bitspace:
                numbits += 1
                zerobitloc += bitspace
                self.addbit(t, 0, zerobitloc)
        mask = 1 << (dec.ntrks - 1 - t.trknum)
        if t.datacount > 3 and numbits == 1 and dec.data[t.datacount - 2] & mask:
            # the middle of three ones in a row
            dec.adjust_clock(t.clkavg, t.t_peakdeltaprev)
        t.t_pulse_adj = parm.pulse_adj * (numbits * t.clkavg.t_bitspaceavg - delta)
        return numbits

    def peak(self, t, t_peak):
        dec = self.dec
        if t.t_lastclock != 0:
            dec.record_peakstat(t.clkavg.t_bitspaceavg, t_peak - t.t_lastpeak, t.trknum)
        self.checkzeros(t, t_peak - t.t_lastpeak)
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

    def after_track(self, t):
        ''' A track with no peaks for too long is at the end of the block '''
        dec = self.dec
        if t.datablock and dec.timenow > t.t_lastpeak + GCR_IDLE_THRESH * t.clkavg.t_bitspaceavg:
            t.datablock = False
            t.idle = True
            dec.num_trks_idle += 1
            dec.log.dlog(
                "trk %d becomes idle, %d idle at %.8f, AGC %.2f\n",
                t.trknum, dec.num_trks_idle, dec.timenow, t.agc_gain
            )
            if dec.num_trks_idle >= dec.ntrks:
                self.end_of_block()
                return True
        return False

    #################################################################
    # Storage groups to data

    def bad_subgroup(self, trk, msg):
        self.dec.log.dlog(
            " bad dgroup at trk %d bitnum %d: %02X, %s\n",
            trk, self.bitnum, self.sgroups[trk], msg
        )
        self.dec.result.gcr_bad_dgroups += 1

    def get_sgroups(self):
        ''' The next 5 bits of every track '''
        dec = self.dec
        for bitnum in range(5):
            dataword = dec.data[self.bitnum + bitnum]
            for trk in range(8, -1, -1):
                self.sgroups[trk] = ((self.sgroups[trk] << 1) & 0x1f) | (dataword & 1)
                dataword >>= 1

    def store_dgroups(self):
        ''' Decode one subgroup per track into four 9 bit bytes '''
        dec = self.dec
        result = dec.result
        data = dec.data
        for trk in range(9):
            mask = 1 << (8 - trk)
            nibble = GCR_DATAMAP[self.sgroups[trk]]
            if nibble >= 16:
                self.bad_subgroup(trk, "invalid 5-bit code")
                nibble -= 16
            for bitnum in range(3, -1, -1):
                if nibble & 1:
                    data[self.bytenum + bitnum] |= mask
                else:
                    data[self.bytenum + bitnum] &= ~mask
                nibble >>= 1
        for ndx in range(self.bytenum, self.bytenum + 4):
            if parity(data[ndx]) != dec.expected_parity:
                dec.log.dlog("parity err at byte %d data %03X from time %.8f\n", ndx, data[ndx], dec.data_time[ndx])
                self.bad_parity_in_dgroup += 1
                if result.first_error < 0:
                    result.first_error = ndx
        self.bytenum += 4

    def expected_ecc(self):
        ''' ECC of the seven data bytes before the ECC byte we just stored '''
        data = self.dec.data
        return gcr_ecc.compute_ecc([data[self.bytenum - i] >> 1 for i in range(8, 1, -1)])

    def check_dgroup(self):
        ''' The 8 bytes of a data group are complete '''
        dec = self.dec
        data = dec.data
        result = dec.result
        first = self.bytenum - 8
        if self.expected_ecc() != data[self.bytenum - 1] >> 1:
            dec.log.dlog("ecc bad in dgroup ending at byte %d\n", self.bytenum - 1)
            result.ecc_errs += 1
            if result.first_error < 0:
                result.first_error = self.bytenum - 1
        if self.bad_parity_in_dgroup:
            dec.log.dlog(
                "%d parity errors in dgroup ending at byte %d\n",
                self.bad_parity_in_dgroup, self.bytenum - 1
            )
            if dec.opts.correct:
                # the ECC code wants the parity bit on the left
                dblock = [((x >> 1) & 0xff) | ((x & 1) << 8) for x in data[first:self.bytenum]]
                if gcr_ecc.correct_errors(dblock, 0x01, dec.log):
                    self.bad_parity_in_dgroup = 0
                    for i, word in enumerate(dblock):
                        data[first + i] = ((word & 0xff) << 1) | (word >> 8)
                        if parity(data[first + i]) != dec.expected_parity:
                            self.bad_parity_in_dgroup += 1
                    dec.log.dlog("  now there are %d parity errors in the dgroup\n", self.bad_parity_in_dgroup)
                    result.corrected_bits += 1
                    if self.expected_ecc() != data[self.bytenum - 1] >> 1:
                        dec.log.dlog("  but the ecc is now wrong\n")
                        result.ecc_errs += 1
                else:
                    dec.log.dlog("did not correct error\n")
            result.vparity_errs += self.bad_parity_in_dgroup

    def postprocess(self):
        '''
           Turn the storage groups in data[] into the data bytes,
           in place, checking parity and ECC along the way.
        '''
        dec = self.dec
        result = dec.result
        result.blktype = BS_BLOCK
        result.first_error = -1
        self.bitnum = 0
        self.bytenum = 0
        self.bad_parity_in_dgroup = 0
        state = ST_PREAMBLE
        while self.bitnum <= result.maxbits - 5:
            self.get_sgroups()
            self.bitnum += 5
            subgroup = self.sgroups[MASTER_TRACK]

            if state == ST_PREAMBLE:
                if subgroup == GCR_MARK1:
                    state = ST_DATA_A
                    self.bytenum = 0

            elif state == ST_DATA_A:
                if subgroup == GCR_MARK2:
                    state = ST_RESYNC
                elif subgroup == GCR_SYNC:
                    state = ST_RESIDUAL_A
                else:
                    self.bad_parity_in_dgroup = 0
                    self.store_dgroups()
                    state = ST_DATA_B

            elif state == ST_DATA_B:
                self.store_dgroups()
                self.check_dgroup()
                # drop the ECC byte
                self.bytenum -= 1
                state = ST_DATA_A

            elif state == ST_RESYNC:
                if subgroup == GCR_MARK1:
                    state = ST_DATA_A
                elif subgroup != GCR_SYNC:
                    self.bad_subgroup(MASTER_TRACK, "other than SYNC or MARK1 during resync")

            elif state == ST_RESIDUAL_A:
                self.store_dgroups()
                state = ST_RESIDUAL_B

            elif state == ST_RESIDUAL_B:
                self.store_dgroups()
                state = ST_CRC_A

            elif state == ST_CRC_A:
                self.store_dgroups()
                state = ST_CRC_B

            elif state == ST_CRC_B:
                self.store_dgroups()
                # the top 3 bits of the residual character: how many residual bytes are data
                residual_count = dec.data[self.bytenum - 2] >> (5 + 1)
                self.bytenum -= 16 - residual_count
                state = ST_POSTAMBLE

        result.minbits = result.maxbits = self.bytenum
        dec.interblock_counter = int(GCR_IBG_SECS / dec.sample_deltat)

    #################################################################
    # End of block

    def is_tapemark(self):
        trks = self.dec.trkstate
        for trk in TAPEMARK_BUSY:
            if not 250 <= trks[trk].datacount <= 400:
                return False
        for trk in TAPEMARK_QUIET:
            if trks[trk].peakcount > 2:
                return False
        return True

    def end_of_block(self):
        dec = self.dec
        if dec.block.endblock_done:
            return
        dec.block.endblock_done = True
        result = dec.result
        result.minbits, result.maxbits = dec.track_lengths()
        result.avg_bit_spacing = dec.avg_bit_spacing()
        dec.agc_range()
        dec.log.dlog(
            "GCR end of block, min %d max %d, avgbitspacing %.2f usec at %.8f\n",
            result.minbits, result.maxbits, result.avg_bit_spacing * 1e6, dec.timenow
        )
        dec.set_expected_parity(result.maxbits)
        if result.maxbits <= 10:
            if dec.opts.verbose_level & VL_ATTEMPTS:
                dec.log.rlog("   detected noise block of length %d at %.8f\n", result.maxbits, dec.timenow)
            result.blktype = BS_NOISE
        elif self.is_tapemark():
            result.blktype = BS_TAPEMARK
        elif result.maxbits - result.minbits > 2:
            if dec.opts.verbose_level & VL_TRACKLENGTHS:
                dec.log.rlog(
                    "*** block with mismatched tracks, lengths %s\n",
                    " ".join(str(t.datacount) for t in dec.tracks())
                )
            result.track_mismatch = result.maxbits - result.minbits
            result.blktype = BS_BADBLOCK
        else:
            self.postprocess()

ALL = [
    GroupCodedRecording,
]
