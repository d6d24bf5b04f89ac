#!/usr/bin/env python3

'''
   Reading a tape, block by block
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

   For each block we remember where in the input it started, decode
   it with the first parmset and, if that wasn't perfect and -m was
   given, go back and try the other parmsets.  The best of the tries
   is then written out.

   Before that, the start of the tape may be read once or twice to
   estimate the density and the head skew.
'''

import os
import time

from . import errors
from . import parmsets
from . import samples
from . import stats
from .decoder import Decoder
from .log import intcommas, add_s
from .options import (
    PE, NRZI, GCR, WW, MAXPARMSETS, VERSION, VL_ATTEMPTS, FLUX_POS,
)
from .tape import Tape, block_checksum
from .trackstate import (
    BS_NONE, BS_TAPEMARK, BS_NOISE, BS_BADBLOCK, BS_BLOCK, BS_NAMES,
)
from ..formats import index

GCR_BPI = 9042
DEFAULT_IPS = 50

# What became of the tries at one block
TRIES_ENDFILE = "endfile"
TRIES_DONE = "done"
TRIES_CHOOSE = "choose"

class BlockReader():
    ''' Decode one input file '''

    def __init__(self, opts, log, baseinfilename, extension="", cmdline=None):
        self.opts = opts
        self.log = log
        self.baseinfilename = baseinfilename
        self.extension = extension
        self.cmdline = cmdline or []
        self.source = None
        self.indatafilename = None
        self.dec = None
        self.tape = None
        self.parmsets = None
        self.blockstart = None
        self.last_parmset = 0
        self.lines_in = 0
        self.said_rates = False
        self.ok = True
        self.endfile = False
        self.skew_ok = None
        self.start_time = time.time()

    def __repr__(self):
        return "<BlockReader %s>" % self.baseinfilename

    #################################################################
    # Setting up

    def open_input(self):
        ''' <base>.csv unless told otherwise, else <base>.tbin '''
        opts = self.opts
        if not opts.tbin_file and self.extension.lower() != ".tbin":
            filename = self.baseinfilename + ".csv"
            if os.path.exists(filename):
                self.indatafilename = filename
                self.source = samples.CsvSource(filename, opts, self.log)
        if not self.source:
            filename = self.baseinfilename + ".tbin"
            errors.check_file(
                os.path.exists(filename),
                "Unable to open input file \"%s\" .tbin or .csv", self.baseinfilename
            )
            self.indatafilename = filename
            self.source = samples.TbinSource(filename, opts, self.log)
            opts.tbin_file = True
        self.source.open()

    def show_program_info(self):
        log = self.log
        log.rlog("this is readtape version %s, running on %s\n", VERSION, time.ctime(self.start_time))
        log.rlog("  command line: %s\n", " ".join(self.cmdline))

    def setup(self):
        ''' Everything up to the first block '''
        opts = self.opts
        log = self.log
        self.open_input()
        src = self.source
        if not opts.quiet:
            self.show_program_info()
            log.rlog("\nreading file \"%s\"\n", self.indatafilename)
            log.rlog("the output files will be \"%s.xxx\"\n", opts.baseoutfilename)
        if opts.tbin_file:
            src.read_header()

        self.parmsets = parmsets.read_parms(opts, log, self.baseinfilename)
        if opts.ntrks_specified > 0:
            if opts.ntrks == 0:
                opts.ntrks = opts.nheads = opts.ntrks_specified
            else:
                errors.check_usage(
                    opts.ntrks == opts.ntrks_specified,
                    "ntrks=%d doesn't match what we already deduced: %d",
                    opts.ntrks_specified, opts.ntrks
                )

        if opts.tbin_file:
            if not src.nheads:
                src.set_nheads(opts.nheads or opts.ntrks)
        else:
            src.read_header()
        errors.check_usage(opts.ntrks > 0, "the number of tracks is unknown; use -ntrks=")
        errors.check_usage(
            opts.mode != WW or opts.track_order,
            "Whirlwind needs the track assignments given with -order="
        )

        if opts.skip_samples > 0:
            if not opts.quiet:
                log.rlog("skipping the first %s samples...\n", intcommas(opts.skip_samples))
            src.skip(opts.skip_samples)

        errors.check_usage(not opts.add_parity or opts.ntrks < 9, "-addparity not allowed with ntrks=%d", opts.ntrks)
        if opts.head_to_trk is None or (opts.tbin_file and src.reordered()):
            opts.default_track_order()
        if opts.ips_specified >= 0:
            opts.ips = opts.ips_specified
        if opts.ips == 0:
            opts.ips = DEFAULT_IPS
        if opts.bpi_specified >= 0:
            opts.bpi = opts.bpi_specified
        if opts.mode == GCR:
            if opts.bpi != GCR_BPI:
                log.rlog("BPI was reset to %d for GCR 6250\n", GCR_BPI)
            opts.bpi = GCR_BPI

        if opts.tbin_out and not opts.tbin_file:
            samples.csv_to_tbin(src, opts.baseoutfilename + ".tbin", opts, log)

        self.dec = Decoder(opts, log, self.parmsets, src.sample_deltat)
        cls = index.find_mode(opts.mode)
        errors.check(cls is not None, "no decoder for mode %s", opts.modename())
        self.dec.attach(cls)
        if opts.skew_given:
            self.dec.skew.delaycnt[:opts.ntrks] = opts.skew_delays[:opts.ntrks]
            self.dec.skew.given = True
        self.tape = Tape(opts, log)

    def say_configuration(self):
        ''' Once, when the first sample is decoded '''
        opts = self.opts
        log = self.log
        dec = self.dec
        deltat = self.source.sample_deltat
        log.rlog("\nexecution-time configuration:\n")
        if opts.set_ntrks_from_order:
            log.rlog("  we set ntrks=%d as implied by the -order string \"%s\"\n", opts.ntrks, opts.track_order)
        if opts.mode == WW:
            parity = "no"
        elif dec.expected_parity:
            parity = "odd"
        else:
            parity = "even"
        log.rlog(
            "  %d track %s encoding, %s parity, %d BPI at %d IPS",
            opts.ntrks, opts.modename(), parity, int(opts.bpi), int(opts.ips)
        )
        if opts.bpi:
            log.rlog(" (%.2f usec/bit)", 1e6 / (opts.bpi * opts.ips))
        log.rlog("\n  first sample is at time %.8f seconds on the tape\n", dec.timenow)
        if opts.subsample > 1:
            log.rlog("  subsampling every %d samples\n", opts.subsample)
        if opts.invert:
            log.rlog("  inverting the data polarity\n")
        if opts.reverse_tape:
            log.rlog("  reversing the bit pairs in each word, and the words in each block\n")
        log.rlog("  sampling rate is %s Hz (%.2f usec)", intcommas(int(1.0 / deltat)), deltat * 1e6)
        if opts.bpi:
            per_bit = int(1 / (opts.bpi * opts.ips * deltat))
            log.rlog(", or about %d samples per bit", per_bit)
        log.rlog("\n")
        if opts.bpi and per_bit > 100:
            log.rlog("  ---> Warning: excessive samples per bit; consider using the -subsample option\n")
        if opts.find_zeros:
            log.rlog("  will look for zero crossings, not peaks\n")
        else:
            log.rlog(
                "  peak detection window width is %d samples (%.2f usec)\n",
                dec.pkww_width, dec.pkww_width * deltat * 1e6
            )
        dec.encoding.describe_tracks()
        log.rlog("\n")

    #################################################################
    # Reading

    def restore(self, pos):
        ''' Go back to a saved place in the input '''
        self.source.restore_position(pos)
        self.dec.timenow = pos.timenow
        self.dec.interblock_counter = 0

    def readblock(self, retry):
        '''
           Feed samples to the decoder until it has a block.
           Returns False at the end of the file.
        '''
        opts = self.opts
        dec = self.dec
        src = self.source
        if opts.bpi:
            dec.samples_per_bit = int(1 / (opts.bpi * opts.ips * src.sample_deltat))
        else:
            dec.samples_per_bit = 20
        did_processing = False
        endfile = False
        while True:
            if not retry:
                self.lines_in += 1
            sample = src.next_sample()
            if sample is None:
                if did_processing:
                    dec.force_end_of_block()
                endfile = True
                break
            if not dec.block.window_set:
                dec.set_window_width()
                if not opts.quiet and not self.said_rates:
                    dec.timenow = sample.time
                    self.say_configuration()
                    self.said_rates = True
            did_processing = True
            if dec.process_sample(sample) != BS_NONE:
                break
        result = dec.result
        result.tally()
        if opts.block_crc and result.blktype == BS_BLOCK:
            result.checksum = block_checksum(dec.block_data(result.minbits))
        return not endfile

    def new_block(self):
        dec = self.dec
        dec.init_blockstate()
        dec.block.parmset = 0
        dec.block.tries = 0

    def density_prescan(self):
        ''' No BPI given: look at the transitions at the start of the tape '''
        opts = self.opts
        dec = self.dec
        dec.doing_density_detection = True
        nblks = 0
        start = self.source.save_position()
        while True:
            self.new_block()
            dec.init_trackstate()
            if not self.readblock(True):
                break
            if dec.result.blktype != BS_NOISE:
                nblks += 1
            if dec.estden.done():
                break
        opts.bpi = dec.estden.setdensity(opts.ips, opts.mode, nblks, self.log)
        self.restore(start)
        dec.doing_density_detection = False

    def deskew_prescan(self):
        ''' Line the heads up, based on the first blocks '''
        opts = self.opts
        log = self.log
        dec = self.dec
        dec.doing_deskew = True
        if not opts.quiet:
            log.rlog("\nstarting preprocessing to determine head skew...\n")
        nblks = 0
        min_transitions = 0
        start = self.source.save_position()
        while nblks < stats.MAXSKEWBLKS and min_transitions < stats.MINSKEWTRANS:
            self.new_block()
            dec.start_attempt()
            if not self.readblock(True):
                break
            if dec.result.blktype != BS_NOISE:
                min_transitions = dec.peakstats.min_transitions()
                nblks += 1
        errors.check_usage(
            min_transitions > 0,
            "Some tracks have no transitions. Is ntrks=%d correct?", opts.ntrks
        )
        if not opts.quiet:
            log.rlog("head skew compensation after reading the first %d blocks:\n", nblks)
        dec.skew.compute_deskew(dec.peakstats, dec.bitspace(), True)
        self.restore(start)
        self.output_peakstats("_deskew")
        log.rlog("\n")
        dec.encoding.after_deskew()
        dec.doing_deskew = False

    def output_peakstats(self, suffix):
        ''' Write the transition statistics if asked to, and start over '''
        peakstats = self.dec.peakstats
        if self.opts.peakstats and peakstats.initialized:
            filename = "%s.peakstats%s.csv" % (self.opts.baseoutfilename, suffix)
            count = peakstats.write_csv(filename)
            if not self.opts.quiet:
                self.log.rlog("  peak statistics from %s measurements were written to %s\n", intcommas(count), filename)
        peakstats.initialized = False

    #################################################################
    # Parmsets

    def next_parmset(self):
        ''' The next active parmset we haven't tried on this block '''
        block = self.dec.block
        nxt = block.parmset
        while True:
            nxt += 1
            if nxt >= MAXPARMSETS:
                nxt = 0
            if nxt == block.parmset:
                return nxt
            if nxt < len(self.parmsets) and self.parmsets[nxt].active and block.results[nxt].blktype == BS_NONE:
                return nxt

    def try_parmsets(self):
        '''
           Decode the block until it is perfect or we run out
           of parmsets to try.
        '''
        opts = self.opts
        log = self.log
        dec = self.dec
        block = dec.block
        while True:
            self.last_parmset = block.parmset
            dec.start_attempt()
            if opts.verbose_level & VL_ATTEMPTS:
                log.rlog(
                    "     trying block %d with parmset %d at time %.8f\n",
                    self.tape.numblks + 1, block.parmset, dec.timenow
                )
            if not dec.encoding.queued_block():
                if not self.readblock(block.tries > 0):
                    self.endfile = True
            result = dec.result
            if result.blktype == BS_NONE:
                return TRIES_ENDFILE
            block.tries += 1
            dec.parm.tried += 1
            if opts.verbose_level & VL_ATTEMPTS:
                log.rlog(
                    "       block %d is type %s with parmset %d; minlength %d, maxlength %d, "
                    "%d errors, %d warnings, %d corrected bits at %.8f\n",
                    self.tape.numblks + 1, BS_NAMES[result.blktype], block.parmset,
                    result.minbits, result.maxbits, result.errcount, result.warncount,
                    result.corrected_bits, dec.timenow
                )
            if result.blktype in (BS_TAPEMARK, BS_NOISE):
                return TRIES_DONE
            if result.perfect():
                if block.tries > 1:
                    self.tape.numblks_goodmultiple += 1
                return TRIES_DONE
            if opts.multiple_tries and (opts.mode != PE or result.minbits != 0):
                nxt = self.next_parmset()
                if nxt != block.parmset:
                    block.parmset = nxt
                    self.restore(self.blockstart)
                    log.dlog(
                        "   retrying block %d with parmset %d at time %.8f\n",
                        self.tape.numblks + 1, block.parmset, dec.timenow
                    )
                    continue
            return TRIES_CHOOSE

    def choose_best(self):
        ''' Pick the least bad of the decodings of the block '''
        log = self.log
        block = self.dec.block
        if block.tries == 1:
            if block.result.errcount > 0:
                self.ok = False
            return

        log.dlog("looking a block without errors and the minimum warning\n")
        candidates = [
            (result.warncount, i) for i, result in enumerate(block.results)
            if result.blktype == BS_BLOCK and result.errcount == 0
        ]
        if candidates:
            block.parmset = min(candidates)[1]
            log.dlog("  best no-error choice is parmset %d\n", block.parmset)
            return
        self.ok = False

        log.dlog("looking for an ok block with the minimum errors\n")
        candidates = [
            (result.errcount, i) for i, result in enumerate(block.results)
            if result.blktype == BS_BLOCK
        ]
        if candidates:
            block.parmset = min(candidates)[1]
            log.dlog("  best error choice is parmset %d\n", block.parmset)
            return

        log.dlog("looking for the bad block with the minimum track difference\n")
        candidates = [
            (result.track_mismatch, i) for i, result in enumerate(block.results)
            if result.blktype == BS_BADBLOCK
        ]
        if candidates:
            block.parmset = min(candidates)[1]
            log.dlog(
                "  best bad block choice is parmset %d with mismatch %d\n",
                block.parmset, block.result.track_mismatch
            )
            return

        log.dlog("looking for what must be a noise block\n")
        for i, result in enumerate(block.results):
            if result.blktype == BS_NOISE:
                block.parmset = i
                log.dlog("  best block is parmset %d, which is noise\n", block.parmset)
                return
        raise errors.DecodeAssertion("block state error in process_file()")

    def reread(self):
        ''' Decode the chosen parmset again, to get its data back '''
        opts = self.opts
        log = self.log
        dec = self.dec
        block = dec.block
        chosen_checksum = dec.result.checksum
        self.restore(self.blockstart)
        log.dlog(
            "     rereading block %d with parmset %d at time %.8f\n",
            self.tape.numblks + 1, block.parmset, dec.timenow
        )
        dec.init_trackstate()
        if not self.readblock(True):
            self.endfile = True
        result = dec.result
        log.dlog(
            "     reread of block %d with parmset %d is type %s, minlength %d, maxlength %d, "
            "%d errors, %d corrected bits at %.8f\n",
            self.tape.numblks + 1, block.parmset, BS_NAMES[result.blktype], result.minbits,
            result.maxbits, result.errcount, result.corrected_bits, dec.timenow
        )
        if opts.block_crc and chosen_checksum is not None and result.checksum != chosen_checksum:
            log.rlog(
                "*** WARNING: reread of block %d with parmset %d has a different checksum\n",
                self.tape.numblks + 1, block.parmset
            )

    #################################################################
    # The file

    def process(self):
        '''
           Decode the whole file.
           Returns True only if all blocks were error free.
        '''
        opts = self.opts
        self.setup()
        dec = self.dec
        tape = self.tape

        if not opts.bpi:
            self.density_prescan()
        if opts.mode == WW:
            # the track state lives from block to block
            dec.init_trackstate()
        if opts.deskew:
            if opts.mode == PE:
                self.log.rlog("-deskew option is ignored for PE\n")
            elif opts.skew_given:
                if not opts.quiet:
                    dec.skew.display()
            else:
                self.deskew_prescan()

        self.endfile = False
        while not self.endfile and tape.numblks < opts.numblks_limit:
            self.new_block()
            self.blockstart = self.source.save_position()
            self.log.dlog("\n*** start block search at %.8f\n", dec.timenow)
            status = self.try_parmsets()
            if status == TRIES_ENDFILE:
                break
            if status == TRIES_CHOOSE:
                self.choose_best()
            block = dec.block
            result = dec.result
            if opts.multiple_tries:
                self.log.dlog(
                    "  chose parmset %d as best after %d tries, type %s\n",
                    block.parmset, block.tries, BS_NAMES[result.blktype]
                )
            if result.blktype == BS_NOISE:
                continue
            dec.parm.chosen += 1
            if block.tries > 1 and self.last_parmset != block.parmset:
                self.reread()
                result = dec.result
            if result.blktype == BS_TAPEMARK:
                tape.got_tapemark(dec, self.blockstart.timenow)
            elif result.blktype in (BS_BLOCK, BS_BADBLOCK):
                tape.got_datablock(dec, result.blktype == BS_BADBLOCK, self.blockstart.timenow)
                if opts.adjdeskew and opts.mode == NRZI:
                    dec.skew.adjust(dec.peakstats, dec.encoding.bitspace)
            else:
                raise errors.DecodeAssertion("bad block state after decoding")

        if tape.numblks >= opts.numblks_limit:
            self.log.rlog("\n***blklimit=%d reached\n", opts.numblks_limit)
        tape.finish()
        self.source.close()
        return self.ok

    #################################################################
    # Summary

    def summary(self):
        ''' What we did, for the log and the summary files '''
        opts = self.opts
        log = self.log
        dec = self.dec
        tape = self.tape
        elapsed = time.time() - self.start_time

        log.rlog("\n")
        if opts.summtxtfilename:
            log.open_summary(opts.summtxtfilename)
        log.rlog("summary for file \"%s\":\n", self.indatafilename)
        log.rlog(
            "  %s samples were processed in %.0f seconds (%.3f seconds/block)\n",
            intcommas(self.lines_in), elapsed, elapsed / tape.numblks if tape.numblks else 0
        )
        log.rlog(
            "  created %d output file%s with a total of %s bytes\n",
            tape.numfiles, add_s(tape.numfiles), intcommas(tape.numoutbytes)
        )
        log.rlog(
            "  decoded %d tape marks and %d blocks with %s bytes from %.2f seconds of tape data\n",
            tape.numtapemarks, tape.numblks, intcommas(tape.numdatabytes),
            dec.timenow - tape.data_start_time
        )
        if tape.last_block_time:
            log.rlog("  the last block written was %.8f seconds into the tape\n", tape.last_block_time)
        log.rlog(
            "  %d block%s had errors, %d had warnings",
            tape.numblks_err, add_s(tape.numblks_err), tape.numblks_warn
        )
        if opts.mode != WW:
            log.rlog(
                ", %d had mismatched tracks, %d had bits corrected",
                tape.numblks_trksmismatched, tape.numblks_corrected
            )
        if opts.mode == NRZI:
            log.rlog(", %d had midbit timing errors", tape.numblks_midbiterrs)
        log.rlog("\n")
        if opts.mode == WW and dec.encoding.num_flux_polarity_changes > 0:
            changes = dec.encoding.num_flux_polarity_changes
            log.rlog("  the flux polarity changed %d time%s during decoding\n", changes, add_s(changes))
        if tape.numblks_unusable > 0:
            log.rlog("  %d blocks were unusable and were not written\n", tape.numblks_unusable)
        log.close_summary()

        if opts.multiple_tries:
            log.rlog("  %d good blocks had to try more than one parmset\n", tape.numblks_goodmultiple)
            for i, pset in enumerate(self.parmsets):
                if pset.tried > 0:
                    log.rlog(
                        "  parmset %d was tried %4d times and used %4d times, or %5.1f%%\n",
                        i, pset.tried, pset.chosen, 100.0 * pset.chosen / pset.tried
                    )

        log.rlog("\n")
        self.output_peakstats("")
        if dec.bitspace() > 0:
            self.skew_ok = dec.skew.compute_deskew(dec.peakstats, dec.bitspace(), False)
            if opts.summtxtfilename:
                log.open_summary(opts.summtxtfilename)
            if self.skew_ok:
                if opts.deskew:
                    log.rlog(
                        "  deskewing with delays up to %.1f%% of a bit time seems to have been successful\n",
                        dec.skew.max_delay_percent
                    )
                else:
                    log.rlog("  the tape data head skew is minimal\n")
            elif opts.deskew:
                log.rlog(
                    "  deskewing with delays up to %.1f%% of a bit time wasn't entirely effective\n"
                    "  the tape might have been written by two different drives\n"
                    "  if so you should consider separating the data into those sections\n",
                    dec.skew.max_delay_percent
                )
            else:
                log.rlog("  head skew is significant; you should try again with the -deskew option\n")
            log.close_summary()

    def summary_csv(self):
        ''' One line per file, for a spreadsheet of tapes '''
        opts = self.opts
        dec = self.dec
        tape = self.tape
        inverted = isinstance(self.source, samples.TbinSource) and self.source.flags & samples.TBIN_INVERTED
        if opts.mode == WW:
            changes = dec.encoding.num_flux_polarity_changes
            direction = dec.encoding.flux_direction
        else:
            changes = 0
            direction = opts.flux_direction
        if changes:
            polarity = "pos&neg"
        elif direction == FLUX_POS:
            polarity = "pos"
        else:
            polarity = "neg"
        with open(opts.summcsvfilename, "a") as file:
            file.write(
                "=\"%s\",=\"%s\",=\"%s\",=\"%s\", %.2f, %d, %d, %d, %d, %d, %d,\"%c\"\n" % (
                    self.baseinfilename,
                    "yes" if inverted else "",
                    polarity,
                    opts.track_order,
                    dec.timenow - tape.data_start_time,
                    tape.numtapemarks,
                    tape.numblks,
                    tape.numdatabytes,
                    tape.numblks_err,
                    tape.numblks_warn,
                    changes,
                    'y' if self.skew_ok else 'n',
                )
            )
