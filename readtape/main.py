#!/usr/bin/env python3

'''
   Main program for readtape
   ~~~~~~~~~~~~~~~~~~~~~~~~~

   readtape <options> <basefilename>[.ext]

   The input is <basefilename>.csv or <basefilename>.tbin, a .tap
   file to be turned into a text dump, or with -f a list of input
   files and their options in <basefilename>.txt.
'''

import copy
import os
import sys

from .base import errors
from .base.blockreader import BlockReader
from .base.log import Log
from .base.options import Options, WW, usage, get_chars_to_blank
from .base.textfile import dump_tapfile

INPUT_EXTENSIONS = (".tap", ".csv", ".tbin", ".txt")

class Main():
    ''' Common main() implementation '''

    def __init__(self, argv=None, stdout=None):
        if argv is None:
            argv = sys.argv
        self.cmdline = list(argv)
        self.stdout = stdout or sys.stdout
        self.log = Log(self.stdout)
        self.opts = Options()
        self.cmdfilename = None
        self.extension = ""

        args = list(argv[1:])
        if not args:
            usage()
            raise errors.UsageError("no input file given")
        while len(args) > 0:
            if args[0] in ('-h', '-?', '--help'):
                usage(self.stdout)
                sys.exit(0)
            elif self.opts.parse_option(args[0]):
                args.pop(0)
            else:
                break
        self.opts.finish_txtfile()
        errors.check_usage(len(args) > 0, "missing base file name")
        errors.check_usage(len(args) == 1, "extra stuff: %s", " ".join(args[1:]))

        self.cmdfilename, ext = os.path.splitext(args[0])
        if ext.lower() in INPUT_EXTENSIONS:
            self.extension = ext.lower()
        else:
            self.cmdfilename = args[0]
        if not self.opts.baseoutfilename_given:
            self.opts.baseoutfilename = self.opts.outpathname + self.cmdfilename

    def __repr__(self):
        return "<Main %s>" % self.cmdfilename

    def run(self):
        ''' Returns the exit code '''
        opts = self.opts
        if opts.tap_read or self.extension == ".tap":
            self.read_tapfile()
            return 0
        errors.check_usage(
            not (opts.mode == WW and opts.multiple_tries),
            "Sorry, multiple decoding tries is not implemented yet for Whirlwind"
        )
        if opts.filelist or self.extension == ".txt":
            self.do_filelist()
        else:
            self.do_file(opts, self.cmdfilename, self.extension, summary=True)
        return 0

    def read_tapfile(self):
        ''' Text dump of an existing .tap file '''
        opts = self.opts
        if opts.ntrks_specified <= 0:
            opts.ntrks = 9
        opts.do_txtfile = True
        opts.finish_txtfile()
        if opts.logging:
            self.log.open_logfile(opts.baseoutfilename + ".log")
        try:
            dump_tapfile(self.cmdfilename + (self.extension or ".tap"), opts, self.log)
        finally:
            self.log.close_logfile()

    def do_file(self, opts, basename, extension="", summary=False):
        '''
           Decode one input file.
           Returns True if all blocks were good.
        '''
        if opts.logging:
            self.log.open_logfile(opts.baseoutfilename + ".log")
        self.log.debug_level = opts.debug_level
        try:
            reader = BlockReader(opts, self.log, basename, extension, self.cmdline)
            ok = reader.process()
            if summary and not opts.quiet:
                reader.summary()
            if opts.summcsvfilename:
                reader.summary_csv()
        except errors.Fatal as err:
            if self.log.logf:
                self.log.logf.write("readtape: %s\n" % err)
            raise
        finally:
            self.log.close_logfile()
        if opts.quiet:
            self.stdout.write("%s: %s\n" % (basename, "ok" if ok else "bad"))
        return ok

    def do_filelist(self):
        ''' Each line of the list is options and an input file name '''
        listname = self.cmdfilename + ".txt"
        errors.check_file(os.path.exists(listname), "Unable to open file list \"%s\"", listname)
        with open(listname, "r") as file:
            lines = file.read().splitlines()
        for line in lines:
            opts = copy.deepcopy(self.opts)
            opts.filelist = False
            rest = line.strip()
            while rest:
                parsed = get_chars_to_blank(rest)
                errors.check_usage(parsed is not None, "unbalanced quotes in \"%s\"", line)
                option, rest = parsed
                if not opts.parse_option(option):
                    basename = option
                    break
            else:
                continue
            opts.finish_txtfile()
            basename, ext = os.path.splitext(basename)
            if ext.lower() not in INPUT_EXTENSIONS:
                basename += ext
                ext = ""
            if not opts.baseoutfilename_given:
                opts.baseoutfilename = opts.outpathname + basename
            ok = self.do_file(opts, basename, ext.lower(), summary=not opts.quiet)
            if not opts.quiet:
                self.stdout.write("%s: %s\n" % (basename, "ok" if ok else "bad"))

def main():
    try:
        sys.exit(Main().run())
    except errors.Fatal as err:
        sys.stderr.write("readtape: %s\n" % str(err))
        sys.exit(err.exit_code)
