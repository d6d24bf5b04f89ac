#!/usr/bin/env python3

'''
   Interpreted text dump
   ~~~~~~~~~~~~~~~~~~~~~

   The data as numbers in hex or octal, and/or as characters, in the
   style of an old fashioned memory dump:

	file: basefilename.octal.B5500.txt
	options: -octal -B5500 -linesize=20
	   80: 604321222543606000436442...   LABEL  0LUKES  0CAS
	       636060600000010611000501...  T   0016905101690530
	tape mark

   A flag before the length marks blocks with errors (!), warnings
   (?) or both (X).
'''

from . import charsets
from . import tap
from .log import intcommas

class TextFile():
    ''' The <base>.<numtype>.<chartype>.txt file, created when first needed '''

    def __init__(self, opts, log):
        self.opts = opts
        self.log = log
        self.file = None
        self.filename = None
        self.translate = charsets.translator(opts.txtfile_chartype)
        self.numrecords = 0
        self.numbytes = 0
        self.numerrors = 0
        self.numwarnings = 0
        self.numerrorsandwarnings = 0
        self.numtapemarks = 0

    def __repr__(self):
        return "<TextFile %s>" % self.filename

    def make_filename(self):
        opts = self.opts
        return "%s.%s%s%s.txt" % (
            opts.baseoutfilename,
            opts.txtfile_numtype or "",
            "." if opts.txtfile_doboth() else "",
            opts.txtfile_chartype or "",
        )

    def open(self):
        opts = self.opts
        self.filename = self.make_filename()
        self.file = open(self.filename, "w")
        self.log.rlog("creating file \"%s\"\n", self.filename)
        self.file.write("file: %s\n" % self.filename)
        optlist = []
        if opts.txtfile_numtype:
            optlist.append("-" + opts.txtfile_numtype)
        if opts.txtfile_chartype:
            optlist.append("-" + opts.txtfile_chartype)
        if opts.txtfile_linefeed:
            optlist.append("-linefeed")
        optlist.append("-linesize=%d" % opts.txtfile_linesize)
        if opts.txtfile_dataspace:
            optlist.append("-dataspace=%d" % opts.txtfile_dataspace)
        self.file.write("options: %s\n" % " ".join(optlist))

    def ensure_open(self):
        if not self.file:
            self.open()

    def tapemark(self):
        self.ensure_open()
        self.numtapemarks += 1
        self.file.write("tape mark\n")

    def erasegap(self):
        self.ensure_open()
        self.file.write("erase gap\n")

    def message(self, fmt, *args):
        self.ensure_open()
        if args:
            fmt = fmt % args
        self.file.write(fmt)

    def chars(self, buffer, linecnt):
        ''' The characters for the numbers already on this line '''
        opts = self.opts
        nmissing = opts.txtfile_linesize - linecnt
        nspaces = nmissing // opts.txtfile_dataspace if opts.txtfile_dataspace else 0
        if opts.txtfile_numtype == "hex":
            nspaces += nmissing * 2
        else:
            nspaces += nmissing * 3
        txt = " " * nspaces
        if not opts.txtfile_dataspace:
            txt += "  "
        return txt + "".join(self.translate(x) for x in buffer[:linecnt])

    def record(self, octets, errcount=0, warncount=0, checksum=None):
        ''' One data block '''
        opts = self.opts
        self.ensure_open()
        length = len(octets)
        self.numrecords += 1
        self.numbytes += length
        if errcount and warncount:
            self.numerrorsandwarnings += 1
            flag = 'X'
        elif errcount:
            self.numerrors += 1
            flag = '!'
        elif warncount:
            self.numwarnings += 1
            flag = '?'
        else:
            flag = ' '
        out = ["%c%4d: " % (flag, length)]
        doboth = opts.txtfile_doboth()
        buffer = []
        i = 0
        while i < length:
            ch = octets[i]
            if len(buffer) >= opts.txtfile_linesize or (opts.txtfile_linefeed and ch == 0x0a):
                if doboth:
                    out.append(self.chars(buffer, len(buffer)))
                out.append("\n       ")
                buffer = []
            buffer.append(ch)
            if opts.txtfile_numtype == "hex":
                out.append("%02X" % ch)
            elif opts.txtfile_numtype == "octal" or (opts.txtfile_numtype == "octal2" and i == length - 1):
                out.append("%03o" % ch)
            elif opts.txtfile_numtype == "octal2":
                # this byte and the next as one 16 bit word
                out.append("%06o" % ((ch << 8) | octets[i + 1]))
                buffer.append(octets[i + 1])
                i += 1
            if opts.txtfile_numtype:
                if opts.txtfile_dataspace and len(buffer) % opts.txtfile_dataspace == 0:
                    out.append(" ")
            else:
                out.append(self.translate(ch))
            i += 1
        if doboth:
            out.append(self.chars(buffer, len(buffer)))
        out.append("\n")
        if checksum is not None:
            out.append("       CRC-32 %08X\n" % checksum)
        self.file.write("".join(out))

    def close(self):
        if not self.file:
            return
        file = self.file
        file.write("end of file\n\n")
        file.write(
            "there were %d data blocks with %s bytes, and %d tapemarks\n" % (
                self.numrecords, intcommas(self.numbytes), self.numtapemarks
            )
        )
        if self.numerrorsandwarnings:
            file.write(
                "%d block(s) with errors and warnings were marked with a X before the length\n"
                % self.numerrorsandwarnings
            )
        if self.numerrors:
            file.write("%d block(s) with errors were marked with a ! before the length\n" % self.numerrors)
        elif not self.numerrorsandwarnings:
            file.write("no blocks had errors\n")
        if self.numwarnings:
            file.write("%d block(s) with warnings were marked with a ? before the length\n" % self.numwarnings)
        elif not self.numerrorsandwarnings:
            file.write("no block had warnings\n")
        file.close()
        self.file = None

def dump_tapfile(filename, opts, log):
    ''' Make the text dump from a .tap file instead of from samples '''
    txtfile = TextFile(opts, log)
    log.rlog("reading file \"%s\"\n", filename)
    with open(filename, "rb") as file:
        for rec in tap.TapReader(file):
            if rec.kind == tap.REC_DATA:
                txtfile.record(rec.data, 1 if rec.error else 0)
            elif rec.kind == tap.REC_TAPEMARK:
                txtfile.tapemark()
            elif rec.kind == tap.REC_ERASEGAP:
                txtfile.erasegap()
            else:
                txtfile.message(".tap end of medium\n")
    txtfile.close()
    return txtfile
