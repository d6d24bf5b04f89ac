#!/usr/bin/env python3

''' MACHINE GENERATED FILE, see make_index.py'''

documentation = {
    "GCR": [
        ['GCR, 9 tracks at 6250 BPI'],
    ],
    "NRZI": [
        ['NRZI with a clock shared by all tracks'],
    ],
    "PE": [
        ['PE, 9 tracks at 1600 BPI'],
    ],
    "Whirlwind": [
        ['Whirlwind I, 2-bit characters with a clock track'],
    ],
}

aliases = {
    "1600": [
        "PE",
    ],
    "200": [
        "NRZI",
    ],
    "556": [
        "NRZI",
    ],
    "6250": [
        "GCR",
    ],
    "800": [
        "NRZI",
    ],
    "WW": [
        "Whirlwind",
    ],
}

modes = {
    1: "PE",
    2: "NRZI",
    4: "GCR",
    8: "Whirlwind",
}

def find_formats(target):
    if target == "1600":
        from . import pe
        yield ("PE", pe.ALL[0])
    elif target == "200":
        from . import nrzi
        yield ("NRZI", nrzi.ALL[0])
    elif target == "556":
        from . import nrzi
        yield ("NRZI", nrzi.ALL[0])
    elif target == "6250":
        from . import gcr
        yield ("GCR", gcr.ALL[0])
    elif target == "800":
        from . import nrzi
        yield ("NRZI", nrzi.ALL[0])
    elif target == "GCR":
        from . import gcr
        yield ("GCR", gcr.ALL[0])
    elif target == "NRZI":
        from . import nrzi
        yield ("NRZI", nrzi.ALL[0])
    elif target == "PE":
        from . import pe
        yield ("PE", pe.ALL[0])
    elif target == "WW":
        from . import whirlwind
        yield ("Whirlwind", whirlwind.ALL[0])
    elif target == "Whirlwind":
        from . import whirlwind
        yield ("Whirlwind", whirlwind.ALL[0])
    elif target == "all":
        from . import gcr
        yield ("GCR", gcr.ALL[0])
        from . import nrzi
        yield ("NRZI", nrzi.ALL[0])
        from . import pe
        yield ("PE", pe.ALL[0])
        from . import whirlwind
        yield ("Whirlwind", whirlwind.ALL[0])

def find_mode(mode):
    for _name, cls in find_formats(modes.get(mode, "")):
        return cls
    return None
