#!/usr/bin/env python3

'''
   SIMH .tap files
   ~~~~~~~~~~~~~~~

   Each record is a 4-byte little-endian length, the data padded to
   an even length, and the length again.  Bit 31 of the length flags
   a record with errors.  A zero length is a tape mark.
'''

import struct

from . import errors
from .options import MAXBLOCK

TAP_TAPEMARK = 0x00000000
TAP_ERASEGAP = 0xfffffffe
TAP_ENDMEDIUM = 0xffffffff
TAP_ERRFLAG = 0x80000000

REC_DATA = "data"
REC_TAPEMARK = "tapemark"
REC_ERASEGAP = "erasegap"
REC_END = "end"

MARKER = struct.Struct("<I")

class TapWriter():
    ''' Writes records to an open binary file and counts the bytes '''

    def __init__(self, file):
        self.file = file
        self.nbytes = 0

    def write_marker(self, num):
        self.file.write(MARKER.pack(num))
        self.nbytes += 4

    def write_record(self, octets, error=False):
        length = len(octets)
        errors.check(0 < length < MAXBLOCK, "bad .tap record length %d", length)
        marker = length
        if error:
            marker |= TAP_ERRFLAG
        self.write_marker(marker)
        self.file.write(octets)
        self.nbytes += length
        if length & 1:
            self.file.write(b'\0')
            self.nbytes += 1
        self.write_marker(marker)

    def write_tapemark(self):
        self.write_marker(TAP_TAPEMARK)

    def write_end(self):
        self.write_marker(TAP_ENDMEDIUM)

class TapRecord():
    ''' One thing found in a .tap file '''

    def __init__(self, kind, data=b'', error=False, offset=0):
        self.kind = kind
        self.data = data
        self.error = error
        self.offset = offset

    def __repr__(self):
        if self.kind == REC_DATA:
            return "<TapRecord %d bytes%s>" % (len(self.data), " error" if self.error else "")
        return "<TapRecord %s>" % self.kind

    def __len__(self):
        return len(self.data)

class TapReader():
    ''' Iterate over the records of a .tap file until the end of medium marker '''

    def __init__(self, file):
        self.file = file
        self.nbytes = 0

    def read(self, length):
        octets = self.file.read(length)
        errors.check_file(
            len(octets) == length,
            "SIMH .tap endfile with no end-of-medium marker"
        )
        self.nbytes += length
        return octets

    def marker(self):
        return MARKER.unpack(self.read(4))[0]

    def __iter__(self):
        while True:
            offset = self.nbytes
            marker = self.marker()
            if marker == TAP_ENDMEDIUM:
                yield TapRecord(REC_END, offset=offset)
                return
            if marker == TAP_ERASEGAP:
                yield TapRecord(REC_ERASEGAP, offset=offset)
                continue
            if marker == TAP_TAPEMARK:
                yield TapRecord(REC_TAPEMARK, offset=offset)
                continue
            errors.check_file(not marker & 0x7f000000, ".tap bad marker: %08X", marker)
            length = marker & 0xffffff
            errors.check_file(length, ".tap bad record length: %08X", marker)
            errors.check_file(length < MAXBLOCK, "SIMH .tap data record too big: %d", length)
            data = self.read(length)
            if length & 1:
                self.read(1)
            trailer = self.marker()
            errors.check_file(
                trailer & 0xffffff == length,
                "bad ending marker: %08X at file offset %d", trailer, self.nbytes
            )
            yield TapRecord(REC_DATA, data, bool(marker & TAP_ERRFLAG), offset)
