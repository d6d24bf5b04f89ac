#!/usr/bin/env python3

'''
   IBM standard tape labels
   ~~~~~~~~~~~~~~~~~~~~~~~~

   80 byte EBCDIC blocks.  VOL1 names the volume, HDR1/HDR2 precede
   a dataset, EOF1/EOF2 follow it and EOV1/EOV2 end a volume in the
   middle of a dataset.
'''

from .charsets import ebcdic_text

LABEL_LENGTH = 80

# (name, start, end) of the fields we show
VOL_FIELDS = (
    ("id", 0, 4),
    ("serno", 4, 10),
    ("owner", 41, 51),
)

HDR1_FIELDS = (
    ("id", 0, 4),
    ("dsid", 4, 21),
    ("serno", 21, 27),
    ("volseqno", 27, 31),
    ("dsseqno", 31, 35),
    ("genno", 35, 39),
    ("genver", 39, 41),
    ("created", 41, 47),
    ("expires", 47, 53),
    ("security", 53, 54),
    ("blkcnt", 54, 60),
    ("syscode", 60, 73),
)

HDR2_FIELDS = (
    ("id", 0, 4),
    ("recfm", 4, 5),
    ("blklen", 5, 10),
    ("reclen", 10, 15),
    ("density", 15, 16),
    ("dspos", 16, 17),
    ("job", 17, 34),
    ("recording", 34, 36),
    ("controlchar", 36, 37),
    ("blkattrib", 38, 39),
)

LABEL_LAYOUTS = {
    "VOL1": VOL_FIELDS,
    "HDR1": HDR1_FIELDS,
    "EOF1": HDR1_FIELDS,
    "EOV1": HDR1_FIELDS,
    "HDR2": HDR2_FIELDS,
    "EOF2": HDR2_FIELDS,
    "EOV2": HDR2_FIELDS,
}

class Label():
    ''' One recognized label, with its fields as text without trailing blanks '''

    def __init__(self, kind, text, layout):
        self.kind = kind
        self.text = text
        for name, start, end in layout:
            setattr(self, name, text[start:end].rstrip(" "))

    def __repr__(self):
        return "<Label %s>" % self.kind

    def describe(self, log, errcount=0):
        if self.kind == "VOL1":
            log.rlog("*** tape label %s, serno \"%s\", owner \"%s\"\n", self.id, self.serno, self.owner)
        elif self.kind[3] == "1":
            log.rlog(
                "*** tape label %s, dsid \"%s\", serno \"%s\", created%s\n",
                self.id, self.dsid, self.serno, self.created
            )
            log.rlog("    volume %s, dataset %s\n", self.volseqno, self.dsseqno)
            if self.kind == "EOF1":
                log.rlog("    block count %s, system %s\n", self.blkcnt, self.syscode)
        else:
            log.rlog(
                "*** tape label %s, RECFM=%s%s, BLKSIZE=%s, LRECL=%s\n",
                self.id, self.recfm, self.blkattrib, self.blklen, self.reclen
            )
            log.rlog("    job: \"%s\"\n", self.job)
        if errcount:
            log.rlog("--> %d errors\n", errcount)

def parse_label(octets):
    ''' A Label if the block is one, else None '''
    if len(octets) != LABEL_LENGTH:
        return None
    text = ebcdic_text(octets)
    layout = LABEL_LAYOUTS.get(text[:4])
    if layout is None:
        return None
    return Label(text[:4], text, layout)
