#!/usr/bin/env python3

'''
   Analog samples from CSV and TBIN files
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

   A sample is the voltage of every head at one instant.  Sources
   deliver them in track order, after inversion and subsampling, and
   can go back to a saved position so a block can be decoded more
   than once.

   TBIN layout (little-endian):

	header     "TBINHDR\\0", 80 byte description, 4-byte fields
	extension  "TBINORD\\0", 20 byte -order string (optional)
	data       "DAT\\0", options, sample_bits, 2 reserved, uint64 tstart_ns
	samples    int16 per head, scaled so 32767 is maxvolts
	end        -32768 in place of the first head
'''

import struct
import time

from . import errors
from .log import intcommas
from .options import MAXTRKS, WW, UNKNOWN

CSV_DELTA_LINES = 10000

TBIN_HDR_TAG = b"TBINHDR"
TBIN_TRKORDER_TAG = b"TBINORD"
TBIN_DAT_TAG = b"DAT"
TBIN_FILE_FORMAT = 1
TBIN_NO_REORDER = 0x01
TBIN_TRKORDER_INCLUDED = 0x02
TBIN_INVERTED = 0x04
TBIN_REVERSED = 0x08
TBIN_ENDMARK = -32768

TBIN_HDR = struct.Struct("<8s80s2I27i3If2IIff")
TBIN_TRKORDER = struct.Struct("<8s20s")
TBIN_DAT = struct.Struct("<4sBBBBQ")

assert TBIN_HDR.size == 240

def cstring(octets):
    ''' The bytes up to the first NUL, as text '''
    return octets.split(b'\0', 1)[0].decode("latin-1")

def tm_fields(when=None):
    ''' A struct tm as 9 integers '''
    if when is None:
        return [0] * 9
    return [
        when.tm_sec, when.tm_min, when.tm_hour, when.tm_mday, when.tm_mon - 1,
        when.tm_year - 1900, (when.tm_wday + 1) % 7, when.tm_yday - 1, when.tm_isdst,
    ]

def tm_text(fields):
    sec, mins, hour, mday, mon, year = fields[:6]
    return "%04d-%02d-%02d %02d:%02d:%02d" % (year + 1900, mon + 1, mday, hour, mins, sec)

class Sample():
    ''' Voltages by track at one time '''

    def __init__(self, when, voltages):
        self.time = when
        self.voltages = voltages

    def __repr__(self):
        return "<Sample %.8f>" % self.time

class Position():
    ''' Where to come back to '''

    def __init__(self, offset, timenow, numsamples, time_ns=0):
        self.offset = offset
        self.timenow = timenow
        self.numsamples = numsamples
        self.time_ns = time_ns

class SampleSource():
    ''' Common machinery for the input file formats '''

    suffix = None

    def __init__(self, filename, opts, log):
        self.filename = filename
        self.opts = opts
        self.log = log
        self.file = None
        self.nheads = 0
        self.sample_deltat = 0.0
        self.timenow = 0.0
        self.numsamples = 0

    def __repr__(self):
        return "<%s %s>" % (self.__class__.__name__, self.filename)

    def close(self):
        if self.file:
            self.file.close()
            self.file = None

    def tell(self):
        return self.file.tell()

    def save_position(self):
        return Position(self.tell(), self.timenow, self.numsamples)

    def restore_position(self, pos):
        self.file.seek(pos.offset)
        self.timenow = pos.timenow
        self.numsamples = pos.numsamples

    def set_nheads(self, nheads):
        self.nheads = nheads

    def read_heads(self):
        ''' Time and per head voltages of the next sample, or None at the end '''
        raise NotImplementedError

    def skip(self, nsamples):
        ''' Throw away the first samples of the file '''
        for left in range(nsamples, 0, -1):
            errors.check_file(
                self.read_heads() is not None,
                "endfile with %d lines left to skip", left
            )

    def next_sample(self):
        ''' The next usable sample in track order, or None at the end '''
        for _i in range(self.opts.subsample):
            raw = self.read_heads()
            if raw is None:
                return None
        when, heads = raw
        voltages = [0.0] * MAXTRKS
        head_to_trk = self.opts.head_to_trk
        for head in range(self.nheads):
            trk = head_to_trk[head]
            voltages[trk] = heads[head]
            if self.opts.invert:
                voltages[trk] = -voltages[trk]
        self.numsamples += 1
        self.timenow = when
        return Sample(when, voltages)

class CsvSource(SampleSource):
    '''
       Saleae style export: two title lines, then "time, v0, v1, ..."

       The timestamps are only given to 0.1 usec, so the time between
       samples is computed from the first CSV_DELTA_LINES of them.
    '''

    suffix = ".csv"

    def open(self):
        self.file = open(self.filename, "r")

    def read_header(self):
        ''' The title lines, then the time between samples '''
        line = self.file.readline()
        errors.check_file(line, "Can't read first CSV title line")
        line = self.file.readline()
        errors.check_file(line, "Can't read second CSV title line")
        numcommas = line.count(',')
        if self.opts.ntrks <= 0:
            self.opts.ntrks = self.opts.nheads = numcommas
            if not self.opts.quiet:
                self.log.rlog("  derived ntrks=%d from .CSV file header\n", numcommas)
        elif numcommas != self.opts.nheads:
            self.log.rlog(
                "*** WARNING *** input file has %d columns of data, but ntrks=%d\n",
                numcommas, self.opts.ntrks
            )
        self.nheads = self.opts.nheads or numcommas
        self.compute_deltat()

    def compute_deltat(self):
        start = self.save_position()
        first = None
        linecounter = 0
        while linecounter < CSV_DELTA_LINES - 1:
            line = self.file.readline()
            if not line.strip():
                break
            linecounter += 1
            timestamp = float(line.split(',', 1)[0])
            if first is None:
                first = timestamp
                start.timenow = timestamp
            else:
                self.sample_deltat = (timestamp - first) * self.opts.subsample / (linecounter - 1)
        self.restore_position(start)
        errors.check_file(first is not None, "no samples in %s", self.filename)

    def read_heads(self):
        line = self.file.readline()
        if not line.strip():
            return None
        fields = line.split(',')
        errors.check_file(
            len(fields) > self.nheads,
            "bad CSV line at time %.8f: %s", self.timenow, line.strip()
        )
        return float(fields[0]), [float(x) for x in fields[1:self.nheads + 1]]

    def max_voltage(self):
        ''' The largest voltage anywhere in the rest of the file '''
        pos = self.save_position()
        maxv = 0.0
        while True:
            raw = self.read_heads()
            if raw is None:
                break
            maxv = max([maxv] + [abs(x) for x in raw[1]])
        self.restore_position(pos)
        return maxv

class TbinSource(SampleSource):
    ''' Binary 16 bit samples at a fixed interval '''

    suffix = ".tbin"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.flags = 0
        self.maxvolts = 0.0
        self.deltat_ns = 0
        self.time_ns = 0
        self.sample = None

    def read_struct(self, fmt, what):
        octets = self.file.read(fmt.size)
        errors.check_file(len(octets) == fmt.size, "can't read .tbin %s", what)
        return fmt.unpack(octets)

    def open(self):
        self.file = open(self.filename, "rb")

    def read_header(self):
        ''' Absorb what the header tells us about the tape '''
        opts = self.opts
        log = self.log
        if not opts.quiet:
            log.rlog("\n.tbin file header:\n")
        hdr = self.read_struct(TBIN_HDR, "header")
        errors.check_file(cstring(hdr[0]) == TBIN_HDR_TAG.decode(), ".tbin file missing TBINHDR tag")
        descr = cstring(hdr[1])
        hdrsize, fmt = hdr[2:4]
        tms = hdr[4:31]
        self.flags, ntrks, self.deltat_ns, self.maxvolts, _r1, _r2, mode, bpi, ips = hdr[31:]
        errors.check_file(fmt == TBIN_FILE_FORMAT, "bad .tbin file header version")
        errors.check_file(
            hdrsize == TBIN_HDR.size,
            "bad .tbin hdr size: %d, not %d", hdrsize, TBIN_HDR.size
        )

        if ntrks:
            if opts.ntrks <= 0:
                opts.ntrks = opts.nheads = ntrks
                if not opts.quiet:
                    log.rlog("  using .tbin ntrks = %d\n", ntrks)
            elif ntrks != opts.ntrks:
                log.rlog("*** WARNING *** .tbin file says %d trks but ntrks=%d\n", ntrks, opts.ntrks)
        if mode != UNKNOWN:
            opts.mode = mode
            if not opts.quiet:
                log.rlog("  using .tbin mode = %s\n", opts.modename())
        if opts.bpi_specified < 0 and bpi:
            opts.bpi = bpi
            if not opts.quiet:
                log.rlog("  using .tbin bpi = %.0f\n", bpi)
        if opts.ips_specified < 0 and ips:
            opts.ips = ips
            if not opts.quiet:
                log.rlog("  using .tbin ips = %.0f\n", ips)
        self.sample_deltat = self.deltat_ns / 1e9

        if self.flags & TBIN_TRKORDER_INCLUDED:
            tag, order = self.read_struct(TBIN_TRKORDER, "trkorder header extension")
            errors.check_file(cstring(tag) == TBIN_TRKORDER_TAG.decode(), ".tbin file missing TBINORD tag")
            order = cstring(order)
            if opts.track_order and opts.track_order != order:
                if not opts.quiet:
                    log.rlog(
                        "  the .tbin head order %s is being ignored because "
                        "it was specified as %s on the command line\n",
                        order, opts.track_order
                    )
            else:
                opts.nheads = 0
                errors.check_file(
                    opts.parse_track_order(order),
                    "invalid track order in TBIN file: %s", order
                )
                if not opts.quiet:
                    log.rlog("  -order=%s\n", order)

        if not opts.quiet:
            if not self.flags & TBIN_NO_REORDER:
                log.rlog("  ")
                if opts.track_order:
                    log.rlog("-order was ignored because ")
                log.rlog(
                    "the track ordering was changed to the canonical "
                    "order when the .tbin file was created\n"
                )
            if self.flags & TBIN_INVERTED:
                log.rlog("  the waveforms were inverted by CSVTBIN\n")
            if self.flags & TBIN_REVERSED:
                log.rlog("  the tape may have been read or written backwards\n")
            if descr:
                log.rlog("   description: %s\n", descr)
            for label, fields in (
                ("created on:  ", tms[0:9]),
                ("read on:     ", tms[9:18]),
                ("converted on:", tms[18:27]),
            ):
                if fields[5] > 0:
                    log.rlog("  %s %s\n", label, tm_text(fields))
            log.rlog("  max voltage: %.1fV\n", self.maxvolts)
            log.rlog("  time between samples: %.3f usec\n", self.deltat_ns / 1000)

        tag, _options, sample_bits, _r1, _r2, tstart = self.read_struct(TBIN_DAT, "dat")
        errors.check_file(cstring(tag) == TBIN_DAT_TAG.decode(), ".tbin file missing DAT tag")
        errors.check_file(sample_bits == 16, "we support only 16 bits/sample, not %d", sample_bits)
        self.time_ns = tstart
        self.timenow = tstart / 1e9
        self.set_nheads(opts.nheads or opts.ntrks)

    def set_nheads(self, nheads):
        self.nheads = nheads
        self.sample = struct.Struct("<%dh" % nheads)

    def reordered(self):
        ''' Were the heads put into track order when the file was made? '''
        return not self.flags & TBIN_NO_REORDER

    def save_position(self):
        return Position(self.tell(), self.timenow, self.numsamples, self.time_ns)

    def restore_position(self, pos):
        super().restore_position(pos)
        self.time_ns = pos.time_ns

    def read_heads(self):
        first = self.file.read(2)
        errors.check_file(
            len(first) == 2,
            "can't read .tbin data for head 0 at time %.8f", self.timenow
        )
        if struct.unpack("<h", first)[0] == TBIN_ENDMARK:
            return None
        rest = self.file.read(self.sample.size - 2)
        errors.check_file(
            len(rest) == self.sample.size - 2,
            "can't read .tbin data for heads 1.. at time %.8f", self.timenow
        )
        heads = [x / 32767 * self.maxvolts for x in self.sample.unpack(first + rest)]
        when = self.time_ns / 1e9
        self.time_ns += self.deltat_ns
        return when, heads

class TbinWriter():
    ''' Write samples as a .tbin file '''

    def __init__(self, filename, ntrks, sample_deltat, maxvolts, descr=""):
        self.filename = filename
        self.ntrks = ntrks
        self.deltat_ns = int(round(sample_deltat * 1e9))
        self.maxvolts = maxvolts or 1.0
        self.descr = descr
        self.file = open(filename, "wb")
        self.sample = struct.Struct("<%dh" % ntrks)
        self.count = 0

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def write_header(self, tstart, mode=UNKNOWN, bpi=0.0, ips=0.0, flags=0, trkorder=""):
        when = tm_fields(time.localtime())
        if trkorder:
            flags |= TBIN_TRKORDER_INCLUDED
        self.file.write(
            TBIN_HDR.pack(
                TBIN_HDR_TAG,
                self.descr.encode("latin-1")[:79],
                TBIN_HDR.size,
                TBIN_FILE_FORMAT,
                *([0] * 18 + when),
                flags,
                self.ntrks,
                self.deltat_ns,
                self.maxvolts,
                0, 0,
                mode,
                bpi,
                ips,
            )
        )
        if trkorder:
            self.file.write(TBIN_TRKORDER.pack(TBIN_TRKORDER_TAG, trkorder.encode("latin-1")[:19]))
        self.file.write(TBIN_DAT.pack(TBIN_DAT_TAG, 0, 16, 0, 0, int(round(tstart * 1e9))))

    def write_sample(self, voltages):
        scaled = []
        for v in voltages[:self.ntrks]:
            i = int(round(v / self.maxvolts * 32767))
            scaled.append(min(32767, max(-32767, i)))
        self.file.write(self.sample.pack(*scaled))
        self.count += 1

    def close(self):
        if self.file:
            self.file.write(struct.pack("<h", TBIN_ENDMARK))
            self.file.close()
            self.file = None

def csv_to_tbin(source, filename, opts, log):
    '''
       Copy the rest of a CSV source to a .tbin file.

       Whirlwind heads stay in their input order, with the -order
       string in the header, everything else is put in track order.
    '''
    maxvolts = source.max_voltage()
    start = source.save_position()
    if opts.mode == WW:
        flags = TBIN_NO_REORDER
        trkorder = opts.track_order
        nout = source.nheads
    else:
        flags = 0
        trkorder = ""
        nout = opts.ntrks
    writer = TbinWriter(
        filename, nout, source.sample_deltat / opts.subsample, maxvolts,
        descr="converted from " + source.filename
    )
    with writer:
        first = source.read_heads()
        if first is not None:
            writer.write_header(first[0], opts.mode, opts.bpi, opts.ips, flags, trkorder)
        raw = first
        while raw is not None:
            heads = raw[1]
            if opts.mode == WW:
                writer.write_sample(heads)
            else:
                voltages = [0.0] * MAXTRKS
                for head in range(source.nheads):
                    voltages[opts.head_to_trk[head]] = heads[head]
                writer.write_sample(voltages)
            raw = source.read_heads()
    source.restore_position(start)
    if not opts.quiet:
        log.rlog(
            "created %s with %s samples, max voltage %.2fV\n",
            filename, intcommas(writer.count), maxvolts
        )
    return writer.count

