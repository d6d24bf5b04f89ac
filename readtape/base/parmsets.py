#!/usr/bin/env python3

'''
   Parameter sets
   ~~~~~~~~~~~~~~

   A parameter set tunes the clock, the AGC and the peak detector.
   Up to MAXPARMSETS of them can be tried on a block.

   The <base>.parms (or PE.parms, NRZI.parms, GCR.parms, Whirlwind.parms)
   file looks like:

	// comment
	readtape -ntrks=9 -correct
	parms active, clk_window, clk_alpha, agc_window, ..., id
	{ 1, 0, 0.2, 5, ..., PRM }

   The "parms" line gives the order of the values in the rows below it,
   so parameters can come and go without invalidating old files.
'''

import os

from . import errors
from .options import PE, NRZI, GCR, WW, ALLMODES, MAXPARMSETS, get_chars_to_blank
from .trackstate import CLKRATE_WINDOW, AGC_MAX_WINDOW, PKWW_PEAKHEIGHT

P_INT = "int"
P_FLT = "float"
P_STR = "str"

# Compile time decoding constants, shown with the parmsets
ZEROCROSS_PEAK = 0.2
ZEROCROSS_SLOPE = 1.5
PEAK_THRESHOLD = 0.005
AGC_MAX_VALUE = 2.0
GCR_IDLE_THRESH = 6.0
PE_IDLE_FACTOR = 2.5
WW_CLKSTOP_BITS = 1.5
WW_PEAKSCLOSE_BITS = 0.5
WW_PEAKSFAR_BITS = 2.0
WW_MAX_CLK_VARIATION = 0.10

class ParmDescr():
    ''' One known parameter '''

    def __init__(self, ptype, name, modes, lo, hi):
        self.ptype = ptype
        self.name = name
        self.modes = modes
        self.lo = lo
        self.hi = hi

PARMS = (
    ParmDescr(P_INT, "active", ALLMODES, 0, 1),
    ParmDescr(P_INT, "clk_window", ALLMODES, 0, CLKRATE_WINDOW),
    ParmDescr(P_FLT, "clk_alpha", ALLMODES, 0, 1),
    ParmDescr(P_INT, "agc_window", ALLMODES, 0, AGC_MAX_WINDOW),
    ParmDescr(P_FLT, "agc_alpha", ALLMODES, 0, 1),
    ParmDescr(P_FLT, "min_peak", ALLMODES, 0, 5),
    ParmDescr(P_FLT, "clk_factor", PE, 0, 2),
    ParmDescr(P_FLT, "pulse_adj", ALLMODES & ~WW, 0, 1),
    ParmDescr(P_FLT, "pkww_bitfrac", ALLMODES, 0, 2),
    ParmDescr(P_FLT, "pkww_rise", ALLMODES, 0, 5),
    ParmDescr(P_FLT, "midbit", NRZI, 0, 1),
    ParmDescr(P_FLT, "z1pt", GCR, 1, 2),
    ParmDescr(P_FLT, "z2pt", GCR, 2, 3),
    ParmDescr(P_STR, "id", ALLMODES, 0, 0),
)

PARMS_BY_NAME = dict((x.name, x) for x in PARMS)

DEFAULTS = {
    PE: (
        "parms active, clk_window, clk_alpha, agc_window, agc_alpha, min_peak, "
        "clk_factor, pulse_adj, pkww_bitfrac, pkww_rise, id",
        "{ 1, 0, 0.2, 5, 0.0, 0.0, 1.50, 0.4, 0.7, 0.10, PRM }",
        "{ 1, 0, 0.2, 5, 0.0, 0.1, 1.50, 0.4, 0.7, 0.10, PRM }",
        "{ 1, 3, 0.0, 5, 0.0, 0.0, 1.40, 0.0, 0.7, 0.10, PRM }",
        "{ 1, 3, 0.0, 5, 0.0, 0.0, 1.40, 0.2, 0.7, 0.10, PRM }",
        "{ 1, 5, 0.0, 5, 0.0, 0.0, 1.40, 0.0, 0.7, 0.10, PRM }",
        "{ 1, 5, 0.0, 5, 0.0, 0.0, 1.50, 0.2, 0.7, 0.10, PRM }",
        "{ 1, 5, 0.0, 5, 0.0, 0.0, 1.40, 0.4, 0.7, 0.10, PRM }",
        "{ 1, 3, 0.0, 5, 0.0, 0.0, 1.40, 0.2, 0.7, 0.10, PRM }",
    ),
    NRZI: (
        "parms active, clk_window, clk_alpha, agc_window, agc_alpha, min_peak, "
        "pulse_adj, pkww_bitfrac, pkww_rise, midbit, id",
        "{ 1, 0, 0.200, 0, 0.300, 1.000, 0.300, 0.700, 0.200, 0.500, PRM }",
        "{ 1, 0, 0.300, 0, 0.300, 1.000, 0.400, 0.600, 0.200, 0.500, PRM }",
        "{ 1, 2, 0.000, 0, 0.300, 1.000, 0.400, 0.700, 0.200, 0.500, PRM }",
        "{ 1, 0, 0.600, 0, 0.300, 1.000, 0.400, 0.600, 0.200, 0.500, PRM }",
        "{ 1, 2, 0.000, 1, 0.000, 0.500, 0.500, 0.900, 0.050, 0.500, PRM } // shallow peaks",
        "{ 1, 0, 0.200, 1, 0.000, 1.000, 0.500, 0.700, 0.050, 0.500, PRM }",
        "{ 1, 2, 0.000, 1, 0.000, 0.500, 0.500, 0.700, 0.050, 0.500, PRM }",
        "{ 1, 0, 0.600, 1, 0.000, 0.500, 0.500, 0.600, 0.050, 0.500, PRM }",
    ),
    GCR: (
        "parms active, clk_window, clk_alpha, agc_window, agc_alpha, min_peak, "
        "pulse_adj, pkww_bitfrac, pkww_rise, z1pt, z2pt, id",
        "{ 1, 0, 0.015, 0, 0.500, 0.200, 0.300, 1.500, 0.200, 1.450, 2.350, PRM }",
        "{ 1, 0, 0.020, 0, 0.500, 0.200, 0.300, 1.500, 0.200, 1.450, 2.350, PRM }",
        "{ 1, 0, 0.010, 0, 0.500, 0.200, 0.300, 1.500, 0.200, 1.450, 2.350, PRM }",
        "{ 1, 10, 0.000, 0, 0.500, 0.000, 0.600, 1.500, 0.140, 1.400, 2.300, PRM }",
        "{ 1, 0, 0.020, 0, 0.500, 0.200, 0.300, 1.500, 0.200, 1.480, 2.350, PRM }",
    ),
    WW: (
        "parms active, clk_window, clk_alpha, agc_window, agc_alpha, min_peak, "
        "pkww_bitfrac, pkww_rise, id",
        "{ 1, 0, 0.050, 0, 0.500, 1.000, 0.400, 0.200, PRM }",
        "{ 1, 0, 0.020, 0, 0.500, 0.050, 0.200, 0.200, PRM }",
    ),
}

class Parmset():
    ''' One set of decoding parameters, plus how often it was used '''

    def __init__(self):
        for descr in PARMS:
            if descr.ptype == P_INT:
                setattr(self, descr.name, 0)
            elif descr.ptype == P_FLT:
                setattr(self, descr.name, 0.0)
            else:
                setattr(self, descr.name, "")
        self.comment = ""
        self.tried = 0
        self.chosen = 0

    def __repr__(self):
        return "<Parmset %s>" % ", ".join(
            "%s=%s" % (x.name, getattr(self, x.name)) for x in PARMS
        )

    def copy(self):
        other = Parmset()
        for descr in PARMS:
            setattr(other, descr.name, getattr(self, descr.name))
        other.comment = self.comment
        return other

class Scanner():
    ''' Left to right scanning of one line '''

    def __init__(self, line):
        self.txt = line.rstrip("\r\n").lstrip(" \t")

    def __str__(self):
        return self.txt

    def empty(self):
        return not self.txt

    def key(self, keyword):
        ''' Consume a case insensitive keyword '''
        if self.txt[:len(keyword)].lower() != keyword:
            return False
        self.txt = self.txt[len(keyword):].lstrip(" \t")
        return True

    def name(self):
        n = 0
        while n < len(self.txt) and (self.txt[n].isalnum() or self.txt[n] == '_'):
            n += 1
        retval = self.txt[:n]
        self.txt = self.txt[n:].lstrip(" \t")
        return retval

    def number(self, lo, hi):
        ''' A number in [lo, hi], or None '''
        n = 0
        while n < len(self.txt) and self.txt[n] in "+-.0123456789eE":
            n += 1
        try:
            val = float(self.txt[:n])
        except ValueError:
            return None
        if val < lo or val > hi:
            return None
        self.txt = self.txt[n:].lstrip(" \t")
        return val

def parse_parms(lines, mode, opts, log, defaults=None):
    '''
       Parse parameter set commands from an iterable of lines.

       Values for parameters not named in the "parms" line are
       taken from the first of the defaults.
    '''

    modename = opts.modename()
    sets = []
    file_to_parm = []
    given = set()
    got_names = False

    for line in lines:
        scan = Scanner(line)
        if scan.key("//") or scan.empty():
            continue

        if scan.key("readtape"):
            log.rlog("readtape %s\n", scan)
            rest = str(scan)
            while rest:
                i = get_chars_to_blank(rest)
                errors.check_usage(i is not None, "bad option string in parms file: %s", rest)
                option, rest = i
                errors.check_usage(
                    opts.parse_option(option),
                    "bad option from parms file: %s", option
                )
            continue

        if scan.key("parms"):
            scan.key(":")
            file_to_parm = []
            while True:
                name = scan.name()
                errors.check_file(name, "missing %s parm name at %s", modename, scan)
                descr = PARMS_BY_NAME.get(name)
                if descr is None:
                    log.rlog("  --->obsolete %s parm ignored: %s\n", modename, name)
                else:
                    given.add(name)
                    if not descr.modes & mode:
                        log.rlog(
                            "  --->parm %s ignored because it isn't used for %s\n",
                            name, modename
                        )
                file_to_parm.append(descr)
                if not scan.key(","):
                    break
            errors.check_file(scan.empty(), "bad parm name: %s", scan)
            got_names = True
            continue

        if scan.key("{"):
            errors.check_file(got_names, "missing parameter names line")
            setnum = len(sets) + 1
            pset = Parmset()
            for descr in file_to_parm:
                if descr is not None and descr.ptype == P_STR:
                    continue
                if descr is None:
                    val = scan.number(0, 99)
                    errors.check_file(
                        val is not None,
                        "bad obsolete parm in parmset %d at: %s", setnum, scan
                    )
                else:
                    val = scan.number(descr.lo, descr.hi)
                    errors.check_file(
                        val is not None,
                        "bad %s parm in parmset %d for \"%s\" at: %s",
                        "integer" if descr.ptype == P_INT else "floating point",
                        setnum, descr.name, scan
                    )
                    if descr.ptype == P_INT:
                        val = int(val)
                    setattr(pset, descr.name, val)
                scan.key(",")
            errors.check_file(
                scan.key('"prm"') or scan.key("prm"),
                "missing \"PRM\" in parmset %d at: %s", setnum, scan
            )
            pset.id = "PRM"
            errors.check_file(scan.key("}"), "missing parmset closing } in parmset %d", setnum)
            if scan.key("//"):
                pset.comment = str(scan)
            sets.append(pset)
            errors.check_file(len(sets) <= MAXPARMSETS, "too many parmsets at: %s", scan)
            continue

        raise errors.FileError("bad parmset file input: \"%s\"", str(scan))

    errors.check_file(sets, "no parameter sets given")

    if defaults:
        for descr in PARMS:
            if descr.name in given or descr.ptype == P_STR:
                continue
            val = getattr(defaults[0], descr.name)
            for pset in sets:
                setattr(pset, descr.name, val)
            if descr.modes & mode:
                if descr.ptype == P_FLT:
                    log.rlog(
                        "  --->missing %s floating point parm %s; "
                        "using default of %.3f for all parmsets\n",
                        modename, descr.name, val
                    )
                else:
                    log.rlog(
                        "  --->missing %s integer parm %s; "
                        "using default of %d for all parmsets\n",
                        modename, descr.name, val
                    )
    return sets

def default_parmsets(mode, opts, log):
    ''' The compiled in parameter sets for mode '''
    errors.check(mode in DEFAULTS, "bad mode in read_parms")
    return parse_parms(DEFAULTS[mode], mode, opts, log)

def parms_filenames(opts, baseinfilename):
    ''' The candidate .parms files, in order of preference '''
    if opts.parmsets_file:
        yield opts.parmsets_file
        return
    yield baseinfilename + ".parms"
    dirname = os.path.dirname(baseinfilename)
    if dirname:
        yield os.path.join(dirname, opts.modename() + ".parms")
    yield opts.modename() + ".parms"

def read_parms(opts, log, baseinfilename):
    ''' Find and parse the parameter sets for this input file '''

    defaults = default_parmsets(opts.mode, opts, log)
    for filename in parms_filenames(opts, baseinfilename):
        if not os.path.exists(filename):
            continue
        if not opts.quiet:
            log.rlog("\nreading parmsets from file %s\n", filename)
        with open(filename, "r") as file:
            sets = parse_parms(file, opts.mode, opts, log, defaults)
        if not opts.quiet:
            show_parms(sets, opts, log)
        return sets

    errors.check_file(
        not opts.parmsets_file,
        "can't open parmsets file %s", opts.parmsets_file
    )
    if not opts.quiet:
        log.rlog(
            "\nno .parms file was found, so we're using these internal "
            "defaults for the %s parameter sets:\n", opts.modename()
        )
        show_parms(defaults, opts, log)
    return defaults

def show_parms(sets, opts, log, showall=False):
    ''' Log the parameter sets and the fixed decoding constants '''
    mode = opts.mode
    shown = [x for x in PARMS if showall or x.modes & mode]
    txt = ["  parms "]
    for descr in shown:
        if descr.ptype == P_STR:
            txt.append("%4s\n" % descr.name)
        else:
            txt.append("%11s," % descr.name)
    for pset in sets:
        if pset.active != 1:
            break
        txt.append("  {   ")
        for descr in shown:
            val = getattr(pset, descr.name)
            if descr.ptype == P_INT:
                txt.append("%10d, " % val)
            elif descr.ptype == P_FLT:
                txt.append("%10.3f, " % val)
            else:
                txt.append("  %s}" % val)
        if pset.comment:
            txt.append(" //%s\n" % pset.comment)
        else:
            txt.append("\n")
    log.write("".join(txt))

    log.rlog("\ncompile-time decoding constants:\n")
    if opts.find_zeros:
        log.rlog("  minimum excursion before considering a zero crossing: %.3fV\n", ZEROCROSS_PEAK)
        log.rlog(
            "  maximum time in bits for the required excursion to be attained: %.1f bit times\n",
            ZEROCROSS_SLOPE
        )
    else:
        log.rlog("  peak height closeness threshold: %.3fV\n", PEAK_THRESHOLD)
        log.rlog("  nominal peak height for rise calculation: %.1fV\n", PKWW_PEAKHEIGHT / 2)
    log.rlog("  AGC maximum: %.0f\n", AGC_MAX_VALUE)
    if mode == GCR:
        log.rlog("  GCR idle threshold: %.2f bits\n", GCR_IDLE_THRESH)
    elif mode == PE:
        log.rlog("  PE idle threshold: %.2f bits\n", PE_IDLE_FACTOR)
    elif mode == WW:
        log.rlog("  Whirlwind clock stop detect time:   %03.1f bits\n", WW_CLKSTOP_BITS)
        log.rlog("  Whirlwind peak same-bit  threshold: %03.1f bits\n", WW_PEAKSCLOSE_BITS)
        log.rlog("  Whirlwind peak unrelated threshold: %03.1f bits\n", WW_PEAKSFAR_BITS)
        log.rlog(
            "  Whirlwind clock variation warning threshold: %.0f%%\n",
            WW_MAX_CLK_VARIATION * 100
        )
