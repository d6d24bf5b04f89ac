#!/usr/bin/env python3

'''
   Log files
   ~~~~~~~~~

   Everything we say goes to stdout, to the <base>.log file and, while
   the summary is being written, to the summary text file.
'''

import sys

DLOG_LINE_LIMIT = 20000

def intcommas(n):
    ''' 1234567 -> "1,234,567" '''
    assert n >= 0, "bad call to intcommas: %d" % n
    return "{:,}".format(int(n))

def add_s(value):
    ''' Plural ending '''
    if value == 1:
        return ""
    return "s"

class Log():
    ''' Regular, debug and summary logging '''

    def __init__(self, stdout=None):
        self.stdout = stdout or sys.stdout
        self.logf = None
        self.summf = None
        self.doing_summary = False
        self.debug_level = 0
        self.dlog_lines = 0
        self.dlog_stopped = False

    def open_logfile(self, filename):
        ''' Start logging to a file, closing any previous one '''
        self.close_logfile()
        self.logf = open(filename, "w")

    def close_logfile(self):
        if self.logf:
            self.logf.close()
            self.logf = None

    def open_summary(self, filename):
        ''' Append summary text to filename '''
        self.summf = open(filename, "a")
        self.doing_summary = True

    def close_summary(self):
        self.doing_summary = False
        if self.summf:
            self.summf.close()
            self.summf = None

    def write(self, txt):
        self.stdout.write(txt)
        self.stdout.flush()
        if self.logf:
            self.logf.write(txt)
            self.logf.flush()
        if self.doing_summary and self.summf:
            self.summf.write(txt)

    def rlog(self, fmt, *args):
        ''' Regular log, printf style '''
        if args:
            fmt = fmt % args
        self.write(fmt)

    def dlog(self, fmt, *args):
        ''' Debug log, stops after DLOG_LINE_LIMIT lines '''
        if not self.debug_level or self.dlog_stopped:
            return
        self.dlog_lines += 1
        if self.dlog_lines < DLOG_LINE_LIMIT:
            self.rlog(fmt, *args)
        else:
            self.rlog("-----> debug lines limit reached after %d lines\n", self.dlog_lines)
            self.dlog_stopped = True
