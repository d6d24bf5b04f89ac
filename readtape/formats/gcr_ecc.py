#!/usr/bin/env python3

'''
   GCR error correction
   ~~~~~~~~~~~~~~~~~~~~

   Every GCR data group is seven data bytes and an ECC byte.  The ECC,
   together with the parity track, allows one bad track in the group
   to be corrected, or two if we are told which tracks they are.

   Words handed to correct_errors() have the parity bit on the left,
   (p)(msb..lsb), unlike the rest of the program.
'''

# rows of the generator matrix, one per ECC bit
ECC_MATRIX = (
    0x0f6a71994c5230,
    0x70110840108004,
    0x5a701108401080,
    0x372be95d5a7011,
    0xe95d5a70110840,
    0x4c523001884412,
    0x2be95d5a701108,
    0x5d5a7011084010,
)

# two-track correction matrices, indexed by the distance between the tracks
TWO_TRACK_MATRICES = (
    (0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00),
    (0xfe, 0xfc, 0xf8, 0x0f, 0xe0, 0x3f, 0x7f, 0xff),
    (0x54, 0xa8, 0x50, 0xf5, 0xbf, 0x2a, 0x55, 0xaa),
    (0x93, 0x26, 0x4d, 0x09, 0x80, 0x92, 0x24, 0x49),
    (0xba, 0x75, 0xea, 0x6e, 0x66, 0x77, 0xee, 0xdd),
    (0x11, 0x23, 0x46, 0x9c, 0x29, 0x42, 0x84, 0x08),
    (0x7c, 0xf9, 0xf3, 0x9a, 0x49, 0xef, 0xdf, 0xbe),
    (0x39, 0x72, 0xe5, 0xf3, 0xdf, 0x87, 0x0e, 0x1c),
)

BIT_ORDER = (4, 2, 1, 5, 7, 3, 6, 0, 8)
UNDO_ORDER = (7, 2, 1, 5, 0, 3, 6, 4, 8)
REVERSE_ORDER = (7, 6, 5, 4, 3, 2, 1, 0)

ALPHA_POLY = 0x39
INV_ALPHA_POLY = 0x9c

def dot2(x, y, width):
    ''' Dot product mod 2 of two bit vectors '''
    return bin(x & y & ((1 << width) - 1)).count("1") & 1

def compute_ecc(octets):
    ''' The ECC byte for seven data bytes '''
    assert len(octets) == 7
    dblock = 0
    for octet in octets:
        dblock = (dblock << 8) | octet
    ecc = 0
    for i, row in enumerate(ECC_MATRIX):
        ecc |= dot2(dblock, row, 56) << i
    return ecc

def reorder(value, order):
    ''' Move bit i of value to bit order[i] '''
    retval = 0
    for i, dest in enumerate(order):
        if value & (1 << i):
            retval |= 1 << dest
    return retval

def times_alpha(s):
    s <<= 1
    if s & 0x100:
        s ^= ALPHA_POLY
    return s & 0xff

def div_by_alpha(s):
    bit0 = s & 1
    s >>= 1
    if bit0:
        s ^= INV_ALPHA_POLY
    return s

def matrix_product(matrix, x):
    ''' GF(2) product, row 0 ends up in the leftmost bit '''
    ans = 0
    for i, row in enumerate(matrix):
        ans |= dot2(row, x, 8) << (7 - i)
    return ans

def bad_track_numbers(bad_tracks, log=None):
    ''' The first two bad tracks; both the same if only one is known '''
    found = [i for i in range(9) if bad_tracks & (1 << i)]
    if not found:
        return 0, 0
    if len(found) > 2 and log:
        for i in found[2:]:
            log.rlog("Too many bad track pointers in GCR error correction.  Ignoring track %d\n", i)
    if len(found) == 1:
        return found[0], found[0]
    return found[0], found[1]

def syndromes(words):
    ''' The parity syndrome and the polynomial syndrome '''
    s1 = 0xff
    s2 = 0
    for i, word in enumerate(words):
        s1 ^= (bin(word).count("1") & 1) << i
        s2 = times_alpha(s2)
        s2 ^= word & 0xff
    return s1, reorder(s2, REVERSE_ORDER)

def correct_errors(dblock, bad_tracks=0x01, log=None):
    '''
       Correct the 8 words of a data group in place.
       Returns False if no error location could be found.
    '''
    assert len(dblock) == 8
    bad_tracks = reorder(bad_tracks, BIT_ORDER)
    pi, pj = bad_track_numbers(bad_tracks, log)
    words = [reorder(w, BIT_ORDER) for w in dblock]
    s1, s2 = syndromes(words)

    if pi == pj:
        if s1 != 0:
            if s2 == 0:
                # error only in the parity track
                errloc = 8
            else:
                errloc = -1
                sx = s1
                for i in range(8):
                    if s2 == sx:
                        errloc = i
                        break
                    sx = div_by_alpha(sx)
            if errloc < 0:
                if log:
                    log.rlog("no error location was found in GCR error correction\n")
                return False
            for i in range(8):
                if s1 & (1 << i):
                    words[i] ^= 1 << errloc
    else:
        sy = s2
        for i in range(pi):
            sy = times_alpha(sy)
        sy ^= s1
        if pj == 8:
            # the parity track needs no matrix
            e2 = sy
        else:
            mk = [reorder(x, REVERSE_ORDER) for x in TWO_TRACK_MATRICES[pj - pi]]
            e2 = matrix_product(mk, sy)
        e1 = e2 ^ s1
        for i in range(8):
            if e1 & (1 << i):
                words[i] ^= 1 << pi
            if e2 & (1 << i):
                words[i] ^= 1 << pj

    dblock[:] = [reorder(w, UNDO_ORDER) for w in words]
    return True
