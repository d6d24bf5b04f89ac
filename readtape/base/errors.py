#!/usr/bin/env python3

'''
   Fatal conditions
   ~~~~~~~~~~~~~~~~

   Decoding problems inside a block are never exceptions, they are
   counted in the block result.  What is raised from here ends the run.
'''

class Fatal(Exception):
    ''' Abort processing with an exit code '''

    EXIT_CODE = 99

    def __init__(self, fmt, *args):
        if args:
            fmt = fmt % args
        super().__init__(fmt)
        self.exit_code = self.EXIT_CODE

class UsageError(Fatal):
    ''' Bad command line or option '''

    EXIT_CODE = 4

class FileError(Fatal):
    ''' Missing, unreadable or malformed file '''

    EXIT_CODE = 8

class DecodeAssertion(Fatal):
    ''' Internal invariant violated '''

    EXIT_CODE = 99

def check(condition, fmt, *args):
    ''' Raise DecodeAssertion unless condition holds '''
    if not condition:
        raise DecodeAssertion(fmt, *args)

def check_file(condition, fmt, *args):
    ''' Raise FileError unless condition holds '''
    if not condition:
        raise FileError(fmt, *args)

def check_usage(condition, fmt, *args):
    ''' Raise UsageError unless condition holds '''
    if not condition:
        raise UsageError(fmt, *args)
