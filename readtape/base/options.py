#!/usr/bin/env python3

'''
   Run time options
   ~~~~~~~~~~~~~~~~

   Options come from the command line, from "readtape" lines in a
   .parms file and from the lines of a file list.  They are all
   case insensitive, and look like -KEY or -KEY=value.
'''

import sys

from . import errors

MAXBLOCK = 131072
VERSION = "3.15.0"

MAXPARMSETS = 15
MAXTRKS = 19
MINTRKS = 5
MAXLINE = 400

# Encodings, as stored in the mode field of a TBIN header
UNKNOWN = 0
PE = 1
NRZI = 2
GCR = 4
WW = 8
ALLMODES = PE | NRZI | GCR | WW

MODE_NAMES = {
    PE: "PE",
    NRZI: "NRZI",
    GCR: "GCR",
    WW: "Whirlwind",
}

# Bits of the -v level
VL_BLKSTATUS = 0x01
VL_WARNING_DETAIL = 0x02
VL_ATTEMPTS = 0x04
VL_TRACKLENGTHS = 0x08

FLUX_POS = "pos"
FLUX_NEG = "neg"
FLUX_AUTO = "auto"

# Whirlwind track types, in the order of their -order symbols
WWTRK_PRICLK = 0
WWTRK_PRILSB = 1
WWTRK_PRIMSB = 2
WWTRK_ALTCLK = 3
WWTRK_ALTLSB = 4
WWTRK_ALTMSB = 5
WWTRK_NUMTYPES = 6
WWTRKTYPE_SYMBOLS = "CLMclmx"
WWTRKTYPE_NAMES = (
    "primary clk",
    "primary LSB",
    "primary MSB",
    "alternate clk",
    "alternate LSB",
    "alternate MSB",
)
WWHEAD_IGNORE = MAXTRKS - 1

NUMTYPES = {
    "HEX": "hex",
    "OCTAL": "octal",
    "OCTAL2": "octal2",
}

CHARTYPES = {
    "BCD": "BCD",
    "EBCDIC": "EBCDIC",
    "ASCII": "ASCII",
    "B5500": "B5500",
    "SIXBIT": "sixbit",
    "SDS": "SDS",
    "SDSM": "SDSM",
    "FLEXO": "flexo",
    "CDC": "CDC",
    "UNIVAC": "Univac",
}

USAGE = (
    "",
    "use: readtape <options> <basefilename>[.ext]",
    "",
    "  The input file is <basefilename> with .csv, .tbin, or .tap,",
    "    which may optionally be included in the command.",
    "   If the extension is not specified, it tries .csv first",
    "    then .tbin, and .tap only if -tapread is specified.",
    "",
    "  The output files will be <basefilename>.xxx by default.",
    "",
    "  The optional parameter file is <basefilename>.parms,",
    "   or NRZI,PE,GCR,Whirlwind.parms, in the base or current directory.",
    "",
    "options:",
    "  -ntrks=n       set the number of tracks to n",
    "  -order=        set input data order for tracks 0..ntrks-2,P, where 0=MSB",
    "                 default: 01234567P for 9 trk, 012345P for 7 trk",
    "                 (for Whirlwind: a combination of C L M c l m and x's)",
    "  -pe            PE (phase encoding)",
    "  -nrzi          NRZI (non return to zero inverted)",
    "  -gcr           GCR (group coded recording)",
    "  -whirlwind     Whirlwind I 6-track 2-bit-per-character",
    "  -ips=n         speed in inches/sec (default: 50, except 25 for GCR)",
    "  -bpi=n         density in bits/inch (default: autodetect)",
    "  -zeros         base decoding on zero crossings instead of peaks",
    "  -differentiate do simple delta differentiation of the input data",
    "  -even          expect even parity instead of odd (for 7-track NRZI BCD tapes)",
    "  -parity=n      expect parity n (0=even, 1=odd)",
    "  -revparity=n   reverse parity for blocks n bytes long",
    "  -invert        invert the data so positive peaks are negative and vice versa",
    "  -fluxdir=d     flux direction is 'pos', 'neg', or 'auto' for each block",
    "  -reverse       reverse bits in a word and words in a block (Whirlwind only)",
    "  -skip=n        skip the first n samples",
    "  -blklimit=n    stop after n blocks",
    "  -subsample=n   use only every nth data sample",
    "  -showibg=n     report on interblock gaps greater than n milliseconds",
    "  -noibg         don't report interblock gaps",
    "  -tap           create one SIMH .tap file from all the data",
    "  -deskew        do NRZI track deskewing based on the beginning data",
    "  -adjdeskew     dynamically adjust the deskew after each NRZI block",
    "  -skew=n,n      use this skew, in #samples for each track, rather than deducing it",
    "  -correct       do error correction, where feasible",
    "  -addparity     include the parity bit as the highest bit in the data (for ntrks<9)",
    "  -tbin          only look for a .tbin input file, not .csv first",
    "  -tbinout       also write the .csv input as a .tbin file",
    "  -parmsets=fff  read the parameter sets from file fff",
    "  -peakstats     write peak timing statistics as .csv files",
    "  -crc           show a CRC-32 of each block's data",
    "  -nolog         don't create a log file",
    "  -nolabels      don't try to decode IBM standard tape labels",
    "  -l             do decode IBM standard tape labels (the default)",
    "  -textfile      create an interpreted .<options>.txt file from the data",
    "                   numeric options: -hex -octal (bytes) -octal2 (16-bit words)",
    "                   character options: -ASCII -EBCDIC -BCD -sixbit -B5500 -SDS -SDSM",
    "                        -flexo -CDC -Univac",
    "                   characters per line: -linesize=nn",
    "                   space every n bytes of data: -dataspace=n",
    "                   make LF or CR start a new line: -linefeed",
    "  -tapread       read a SIMH .tap file to produce a textfile; the input may have any extension",
    "  -outf=bbb      use bbb as the <basefilename> for output files",
    "  -outp=ppp      otherwise use ppp as an optional prepended path for output files",
    "  -sumt=sss      append a text summary of results to text file sss",
    "  -sumc=ccc      append a CSV summary of results to text file ccc",
    "  -m             try multiple ways to decode a block",
    "  -nm            don't try multiple ways to decode a block",
    "  -v[n]          verbose mode [level n, default is 1]",
    "  -d[n]          debug output [bits in n, default is 1]",
    "  -q             quiet mode (only say \"ok\" or \"bad\")",
    "  -f             take a file list from <basefilename>.txt",
    "  -h             show this help",
    "",
)

def usage(file=None):
    file = file or sys.stderr
    for i in USAGE:
        file.write(i + "\n")

def parse_number(txt):
    '''
       Decimal, or 0x hex, 0b binary, 0 octal.
       Returns None for anything else.
    '''
    if not txt:
        return None
    try:
        if txt[0] == '0' and len(txt) > 1:
            if txt[1] in 'xX':
                return int(txt[2:], 16)
            if txt[1] in 'bB':
                return int(txt[2:], 2)
            return int(txt[1:], 8)
        return int(txt, 10)
    except ValueError:
        return None

def parse_float(txt):
    try:
        return float(txt)
    except ValueError:
        return None

def get_chars_to_blank(txt):
    '''
       Split one option off the front of txt, honoring "..." quotes
       and \\" escapes.  Returns (option, rest) or None.
    '''
    out = []
    inquote = False
    i = 0
    while i < len(txt):
        ch = txt[i]
        if ch == '\\' and i + 1 < len(txt) and txt[i + 1] == '"':
            out.append('"')
            i += 2
            continue
        if ch == '"':
            inquote = not inquote
            i += 1
            continue
        if ch in "\r\n" or (ch == ' ' and not inquote):
            break
        out.append(ch)
        i += 1
    if inquote:
        return None
    return "".join(out), txt[i:].lstrip(" \t")

class Options():
    ''' Everything that can be changed from the outside '''

    def __init__(self):
        self.mode = PE
        self.ntrks_specified = -1
        self.bpi_specified = -1.0
        self.ips_specified = -1.0
        self.bpi = 0.0
        self.ips = 0.0

        # track layout, settled by -order, the TBIN header or the CSV header
        self.track_order = ""
        self.ntrks = 0
        self.nheads = 0
        self.set_ntrks_from_order = False
        self.head_to_trk = None
        self.trk_to_head = None
        self.ww_type_to_trk = [-1] * WWTRK_NUMTYPES
        self.ww_trk_to_type = [-1] * MAXTRKS

        self.find_zeros = False
        self.differentiate = False
        self.skip_samples = 0
        self.numblks_limit = sys.maxsize
        self.subsample = 1
        self.show_ibg = True
        self.show_ibg_threshold = 5000
        self.verbose = False
        self.verbose_level = 0
        self.debug_level = 0
        self.quiet = False
        self.tap_format = False
        self.tap_read = False
        self.specified_parity = 1
        self.revparity = 0
        self.invert = False
        self.flux_direction = FLUX_NEG
        self.reverse_tape = False
        self.deskew = False
        self.adjdeskew = False
        self.skew_given = False
        self.skew_delays = [0] * MAXTRKS
        self.add_parity = False
        self.correct = False
        self.tbin_file = False
        self.tbin_out = False
        self.parmsets_file = ""
        self.peakstats = False
        self.block_crc = False
        self.logging = True
        self.labels = True
        self.multiple_tries = False
        self.filelist = False

        self.baseoutfilename = ""
        self.baseoutfilename_given = False
        self.outpathname = ""
        self.summtxtfilename = ""
        self.summcsvfilename = ""

        self.do_txtfile = False
        self.txtfile_numtype = None
        self.txtfile_chartype = None
        self.txtfile_linesize = 0
        self.txtfile_dataspace = 0
        self.txtfile_linefeed = False

    def modename(self):
        return MODE_NAMES.get(self.mode, "???")

    def finish_txtfile(self):
        ''' Settle the implications of the text file suboptions '''
        if self.txtfile_numtype or self.txtfile_chartype:
            self.do_txtfile = True
        if self.do_txtfile and not self.txtfile_linesize:
            if self.txtfile_doboth():
                self.txtfile_linesize = 32
            else:
                self.txtfile_linesize = 64

    def txtfile_doboth(self):
        return bool(self.txtfile_numtype and self.txtfile_chartype)

    def parse_option(self, option):
        '''
           Absorb one option.
           Returns False if this isn't an option at all.
        '''
        if not option or option[0] != '-':
            return False
        arg = option[1:]
        key, eq, val = arg.partition('=')
        key = key.upper()
        if eq:
            if self.parse_keyval(key, val, option):
                return True
        elif self.parse_key(key):
            return True
        elif key[:1] in ('V', 'D') and parse_number(arg[1:]) is not None:
            level = parse_number(arg[1:])
            errors.check_usage(0 <= level <= 255, "bad option: %s", option)
            if key[0] == 'V':
                self.verbose_level = level
                self.verbose = True
            else:
                self.debug_level = level
            return True
        raise errors.UsageError("bad option: %s", option)

    def parse_key(self, key):
        ''' Options without a value '''
        if key in ("NRZI", "PE"):
            self.mode = NRZI if key == "NRZI" else PE
        elif key == "GCR":
            self.mode = GCR
            self.ips = 25
        elif key == "WHIRLWIND":
            self.mode = WW
            self.bpi = 100
        elif key == "ZEROS":
            self.find_zeros = True
        elif key == "DIFFERENTIATE":
            self.differentiate = True
        elif key == "TAP":
            self.tap_format = True
        elif key == "TAPREAD":
            self.tap_read = True
        elif key == "EVEN":
            self.specified_parity = 0
        elif key == "INVERT":
            self.invert = True
        elif key == "REVERSE":
            self.reverse_tape = True
        elif key == "DESKEW":
            self.deskew = True
        elif key in ("ADJSKEW", "ADJDESKEW"):
            self.adjdeskew = True
        elif key == "ADDPARITY":
            self.add_parity = True
        elif key == "CORRECT":
            self.correct = True
        elif key == "NOCORRECT":
            self.correct = False
        elif key == "TBIN":
            self.tbin_file = True
        elif key == "TBINOUT":
            self.tbin_out = True
        elif key == "PEAKSTATS":
            self.peakstats = True
        elif key == "CRC":
            self.block_crc = True
        elif key == "NOIBG":
            self.show_ibg = False
        elif key == "TEXTFILE":
            self.do_txtfile = True
        elif key in NUMTYPES:
            self.txtfile_numtype = NUMTYPES[key]
            if key == "OCTAL2":
                self.txtfile_dataspace = 2
        elif key in CHARTYPES:
            self.txtfile_chartype = CHARTYPES[key]
        elif key == "LINEFEED":
            self.txtfile_linefeed = True
        elif key == "NOLOG":
            self.logging = False
        elif key == "NOLABELS":
            self.labels = False
        elif key == "NM":
            self.multiple_tries = False
        elif key == "M":
            self.multiple_tries = True
        elif key == "L":
            self.labels = True
        elif key == "V":
            self.verbose = True
            self.verbose_level = 1
            self.quiet = False
        elif key == "D":
            self.debug_level = 1
            self.quiet = False
        elif key == "Q":
            self.quiet = True
            self.verbose = False
        elif key == "F":
            self.filelist = True
        else:
            return False
        return True

    def parse_keyval(self, key, val, option):
        ''' Options with a value '''
        if key == "NTRKS":
            self.ntrks_specified = self.int_value(val, option, MINTRKS, MAXTRKS)
        elif key == "ORDER":
            errors.check_usage(
                self.parse_track_order(val),
                "bad track order: %s", val
            )
        elif key == "BPI":
            self.bpi_specified = self.flt_value(val, option, 100, 10000, zero_ok=True)
        elif key == "IPS":
            self.ips_specified = self.flt_value(val, option, 10, 200, zero_ok=True)
        elif key == "SKIP":
            self.skip_samples = self.int_value(val, option, 0, sys.maxsize)
        elif key == "BLKLIMIT":
            self.numblks_limit = self.int_value(val, option, 0, sys.maxsize)
        elif key == "SUBSAMPLE":
            self.subsample = self.int_value(val, option, 1, sys.maxsize)
        elif key == "SHOWIBG":
            self.show_ibg_threshold = self.int_value(val, option, 0, sys.maxsize)
            self.show_ibg = True
        elif key == "PARITY":
            self.specified_parity = self.int_value(val, option, 0, 1)
        elif key == "REVPARITY":
            self.revparity = self.int_value(val, option, 0, sys.maxsize)
        elif key == "FLUXDIR":
            errors.check_usage(
                val.lower() in (FLUX_POS, FLUX_NEG, FLUX_AUTO),
                "bad option: %s", option
            )
            self.flux_direction = val.lower()
        elif key == "SKEW":
            self.parse_skew(val)
            self.deskew = True
            self.skew_given = True
        elif key == "OUTF":
            self.baseoutfilename = val
            self.baseoutfilename_given = True
        elif key == "OUTP":
            self.outpathname = val
        elif key == "SUMT":
            self.summtxtfilename = val
        elif key == "SUMC":
            self.summcsvfilename = val
        elif key == "PARMSETS":
            self.parmsets_file = val
        elif key == "LINESIZE":
            self.txtfile_linesize = self.int_value(val, option, 4, MAXLINE)
        elif key == "DATASPACE":
            self.txtfile_dataspace = self.int_value(val, option, 0, MAXLINE)
        else:
            return False
        return True

    def int_value(self, val, option, lo, hi):
        num = parse_number(val)
        errors.check_usage(
            num is not None and lo <= num <= hi,
            "bad option: %s", option
        )
        return num

    def flt_value(self, val, option, lo, hi, zero_ok=False):
        num = parse_float(val)
        errors.check_usage(
            num is not None and (lo <= num <= hi or (zero_ok and num == 0)),
            "bad option: %s", option
        )
        return num

    def assign_ww_track(self, head, tracktype):
        errors.check_usage(
            self.ww_type_to_trk[tracktype] == -1,
            "you already assigned track type %c", WWTRKTYPE_SYMBOLS[tracktype]
        )
        self.ww_type_to_trk[tracktype] = self.ntrks
        self.ww_trk_to_type[self.ntrks] = tracktype
        self.head_to_trk[head] = self.ntrks
        self.trk_to_head[self.ntrks] = head
        self.ntrks += 1

    def parse_track_order(self, txt):
        '''
           Map heads (input columns) to tracks.
           9-track example: 01234567P, Whirlwind example: CMLcml..
        '''
        nheads = len(txt)
        errors.check_usage(
            self.nheads <= 0 or nheads == self.nheads,
            "-order length doesn't match nheads=%d", self.nheads
        )
        errors.check_usage(
            MINTRKS <= nheads <= MAXTRKS,
            "-order can't imply ntrks=%d", nheads
        )
        self.track_order = txt
        self.head_to_trk = [-1] * MAXTRKS
        self.trk_to_head = [-1] * MAXTRKS
        if self.mode == WW:
            self.nheads = nheads
            self.ntrks = 0
            self.ww_type_to_trk = [-1] * WWTRK_NUMTYPES
            self.ww_trk_to_type = [-1] * MAXTRKS
            for head, sym in enumerate(txt):
                errors.check_usage(
                    sym in WWTRKTYPE_SYMBOLS,
                    "bad Whirlwind track order symbol: %s in %s", sym, txt
                )
                if sym == 'x':
                    self.head_to_trk[head] = WWHEAD_IGNORE
                else:
                    self.assign_ww_track(head, WWTRKTYPE_SYMBOLS.index(sym))
            self.set_ntrks_from_order = True
            for tracktype in (WWTRK_PRICLK, WWTRK_PRIMSB, WWTRK_PRILSB):
                errors.check_usage(
                    self.ww_type_to_trk[tracktype] != -1,
                    "%s track ('%c') wasn't assigned",
                    WWTRKTYPE_NAMES[tracktype], WWTRKTYPE_SYMBOLS[tracktype]
                )
            return True

        trks_done = 0
        for head, sym in enumerate(txt):
            if sym.upper() == 'P':
                trk = nheads - 1
            elif sym.isdigit() and int(sym) <= nheads - 2:
                trk = int(sym)
            else:
                return False
            self.head_to_trk[head] = trk
            self.trk_to_head[trk] = head
            trks_done |= 1 << trk
        if trks_done + 1 != 1 << nheads:
            return False
        if self.ntrks == 0:
            self.ntrks = self.nheads = nheads
            self.set_ntrks_from_order = True
        return True

    def default_track_order(self):
        self.head_to_trk = list(range(MAXTRKS))
        self.trk_to_head = list(range(MAXTRKS))

    def parse_skew(self, txt):
        ''' -skew=1,4,0,0,1,... with one delay per track '''
        errors.check_usage(self.ntrks_specified > 0, "must specify ntrks= to use skew=")
        parts = [x.strip() for x in txt.split(',')]
        errors.check_usage(
            len(parts) == self.ntrks_specified,
            "skew list needs %d entries: %s", self.ntrks_specified, txt
        )
        for trk, part in enumerate(parts):
            num = parse_number(part)
            errors.check_usage(num is not None and num >= 0, "bad skew at: %s", part)
            self.skew_delays[trk] = num
