#!/usr/bin/env python3

'''
   Output side
   ~~~~~~~~~~~

   What becomes of the decoded blocks: <base>.NNN.bin files split at
   tape marks (or named from IBM HDR1 labels), or one SIMH <base>.tap
   file, plus the optional text dump and the running counters for the
   summary.
'''

import crcmod.predefined

from . import labels
from .log import intcommas, add_s
from .options import NRZI, PE, WW
from .tap import TapWriter
from .textfile import TextFile

crc32_func = crcmod.predefined.mkCrcFun('crc-32')

def block_checksum(octets):
    return crc32_func(bytes(octets))

def format_block_errors(result, dec):
    ''' The errors and warnings of a block, as one line '''
    txt = []
    if result.errcount > 0:
        txt.append("%d err%s" % (result.errcount, add_s(result.errcount)))
        if result.track_mismatch:
            txt.append(", %d bit track mismatch" % result.track_mismatch)
        if result.vparity_errs:
            txt.append(", %d parity" % result.vparity_errs)
        if result.crc_errs:
            txt.append(", %d CRC" % result.crc_errs)
        if result.lrc_errs:
            txt.append(", 1 LRC")
        if result.ecc_errs:
            txt.append(", %d ECC" % result.ecc_errs)
        if result.gcr_bad_sequence:
            txt.append(", %d bad sequence" % result.gcr_bad_sequence)
        if result.ww_bad_length:
            txt.append(", bad length")
        if result.ww_speed_err:
            txt.append(", bad speed")
    else:
        txt.append("ok")
    if result.warncount > 0:
        txt.append(", %d warning%s" % (result.warncount, add_s(result.warncount)))
        if dec.mode == NRZI and result.corrected_bits > 0:
            txt.append(", %d bits corrected on %d trks" % (
                result.corrected_bits, bin(result.faked_tracks).count("1")
            ))
        if result.missed_midbits:
            txt.append(", %d early peaks" % result.missed_midbits)
        if result.gcr_bad_dgroups:
            txt.append(", %d bad dgroups" % result.gcr_bad_dgroups)
        if dec.mode != NRZI and result.corrected_bits > 0:
            txt.append(", %d corrected bits" % result.corrected_bits)
        if dec.mode == PE:
            faked = dec.count_faked_bits(result.minbits)
            if faked:
                txt.append(", %d faked bits on %d trks" % (faked, dec.count_faked_tracks(result.minbits)))
        if result.ww_leading_clock:
            txt.append(", leading clk")
        if result.ww_missing_onebit:
            txt.append(", missing 1-bit")
        if result.ww_missing_clock:
            txt.append(", missing clk")
    return "".join(txt)

class Tape():
    ''' The output files and the counters of one input file '''

    def __init__(self, opts, log):
        self.opts = opts
        self.log = log
        self.outf = None
        self.tap = None
        self.outdatafilename = None
        self.txtfile = TextFile(opts, log) if opts.do_txtfile else None
        self.hdr1_label = False

        self.numfiles = 0
        self.numfilebytes = 0
        self.numfileblks = 0
        self.numblks = 0
        self.numtapemarks = 0
        self.numoutbytes = 0
        self.numdatabytes = 0
        self.numblks_err = 0
        self.numblks_warn = 0
        self.numblks_trksmismatched = 0
        self.numblks_corrected = 0
        self.numblks_midbiterrs = 0
        self.numblks_unusable = 0
        self.numblks_goodmultiple = 0
        self.data_start_time = 0.0
        self.last_block_time = 0.0
        self.timenow = 0.0

    def __repr__(self):
        return "<Tape %s %d blocks>" % (self.opts.baseoutfilename, self.numblks)

    #################################################################
    # Files

    def close_file(self):
        if not self.outf:
            return
        self.outf.close()
        if not self.opts.quiet:
            self.log.rlog(
                "%s was closed at time %.8f after %s data bytes were extracted from %d blocks\n",
                self.outdatafilename, self.timenow, intcommas(self.numfilebytes), self.numfileblks
            )
        self.outf = None
        self.tap = None

    def create_datafile(self, name=None):
        ''' A file named from a label, or the next generic one '''
        self.close_file()
        if name:
            self.outdatafilename = name + ".bin"
        elif self.opts.tap_format:
            self.outdatafilename = self.opts.baseoutfilename + ".tap"
        else:
            self.outdatafilename = "%s.%03d.bin" % (self.opts.baseoutfilename, self.numfiles + 1)
        if not self.opts.quiet:
            self.log.rlog("creating file \"%s\"\n", self.outdatafilename)
        self.outf = open(self.outdatafilename, "wb")
        if self.opts.tap_format:
            self.tap = TapWriter(self.outf)
        self.numfiles += 1
        self.numfilebytes = 0
        self.numfileblks = 0
        if self.data_start_time == 0:
            self.data_start_time = self.timenow

    def finish(self):
        ''' The input ended '''
        if self.opts.tap_format and self.tap:
            self.tap.write_end()
            self.numoutbytes += 4
        if self.txtfile:
            self.txtfile.close()
        self.close_file()

    #################################################################
    # Blocks

    def show_ibg_time(self, t_blockstart, t_lookstart):
        '''
           t_lookstart is where we started to look for the block,
           at the end of the one before.
        '''
        ibg_msec = int((t_blockstart - t_lookstart) * 1000.0 + 0.5)
        threshold = self.opts.show_ibg_threshold
        if threshold == 0 or ibg_msec >= threshold:
            msg = "%d.%03d sec interblock gap%s\n" % (
                ibg_msec // 1000, ibg_msec % 1000, "!" if threshold > 0 else ""
            )
            self.log.rlog(msg)
            if self.txtfile:
                self.txtfile.message(msg)

    def got_tapemark(self, dec, t_lookstart):
        opts = self.opts
        self.timenow = dec.timenow
        self.numtapemarks += 1
        if opts.show_ibg:
            self.show_ibg_time(dec.block.t_blockstart, t_lookstart)
        if not opts.quiet:
            self.log.rlog("  tapemark at time %.8f, %d blocks written so far\n", dec.timenow, self.numblks)
        if self.txtfile:
            self.txtfile.tapemark()
        if opts.tap_format:
            if not self.outf:
                self.create_datafile()
            self.tap.write_tapemark()
            self.numoutbytes += 4
        elif not self.hdr1_label:
            self.close_file()
        self.hdr1_label = False

    def label(self, dec, octets):
        '''
           Log and absorb an IBM label.
           Returns False if this isn't one.
        '''
        lbl = labels.parse_label(octets)
        if lbl is None:
            return False
        result = dec.result
        if not self.opts.quiet:
            lbl.describe(self.log, result.errcount)
        if lbl.kind == "HDR1":
            name = "%s-%03d-%s" % (self.opts.baseoutfilename, self.numfiles + 1, lbl.dsid)
            if not self.opts.tap_format:
                self.create_datafile(name.rstrip(" "))
            self.hdr1_label = True
        elif lbl.kind == "EOF1" and not self.opts.tap_format:
            self.close_file()
        return True

    def got_datablock(self, dec, badblock, t_lookstart):
        ''' Write the chosen decoding of a block '''
        opts = self.opts
        log = self.log
        block = dec.block
        result = dec.result
        length = result.minbits
        self.timenow = dec.timenow
        if opts.show_ibg:
            self.show_ibg_time(block.t_blockstart, t_lookstart)
        raw = bytes((x >> 1) & 0xff for x in dec.data[:length])
        labeled = not badblock and opts.labels and self.label(dec, raw)
        if length <= 0 or (labeled and not opts.tap_format):
            return

        if dec.mode != WW and length <= 2:
            log.dlog("*** ignoring runt block of %d bytes at %.8f\n", length, dec.timenow)

        if badblock:
            self.numblks_unusable += 1
            if not opts.quiet:
                log.rlog("ERROR: unusable block, ")
                if result.track_mismatch:
                    log.rlog("tracks mismatched with lengths %d to %d", result.minbits, result.maxbits)
                else:
                    log.rlog("unknown reason")
                log.rlog(", %d tries, parmset %d, at time %.8f\n", block.tries, block.parmset, dec.timenow)
            return

        self.last_block_time = dec.timenow
        if not self.outf:
            self.create_datafile()
        octets = dec.block_data(length)
        if opts.tap_format:
            self.tap.write_record(octets, error=result.errcount > 0)
            self.numoutbytes += 8 + (length & 1)
        else:
            self.outf.write(octets)
        if self.txtfile:
            self.txtfile.record(raw, result.errcount, result.warncount, result.checksum)

        if result.errcount:
            self.numblks_err += 1
        if result.warncount:
            self.numblks_warn += 1
        if opts.verbose or self.numblks == 0 or (
            not opts.quiet and (result.errcount > 0 or result.warncount > 0)
        ):
            log.rlog(
                "wrote block %3d, %4d bytes, %d %s, parmset %d, ",
                self.numblks + 1, length, block.tries, "tries" if block.tries > 1 else "try", block.parmset
            )
            if result.alltrk_min_agc_gain == float("inf"):
                log.rlog("max AGC %.2f, ", result.alltrk_max_agc_gain)
            else:
                log.rlog("AGC %.2f-%.2f, ", result.alltrk_min_agc_gain, result.alltrk_max_agc_gain)
            log.rlog(format_block_errors(result, dec))
            if result.avg_bit_spacing and dec.bpi:
                log.rlog(", avg speed %.2f IPS", 1 / (result.avg_bit_spacing * dec.bpi))
            if result.checksum is not None:
                log.rlog(", CRC-32 %08X", result.checksum)
            log.rlog(" at time %.8f\n", dec.timenow)
            if not opts.verbose and self.numblks == 0:
                log.rlog("(subsequent good blocks will not be shown because -v wasn't specified)\n")
        if result.track_mismatch:
            self.numblks_trksmismatched += 1
        if result.missed_midbits > 0:
            self.numblks_midbiterrs += 1
            log.rlog(
                "   WARNING: %d bits were before the midbit using parmset %d for block %d at %.8f\n",
                result.missed_midbits, block.parmset, self.numblks + 1, dec.timenow
            )
        if result.corrected_bits > 0:
            self.numblks_corrected += 1
        self.numfilebytes += length
        self.numoutbytes += length
        self.numdatabytes += length
        self.numfileblks += 1
        self.numblks += 1
