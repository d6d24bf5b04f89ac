#!/usr/bin/env python3

'''
   Character sets
   ~~~~~~~~~~~~~~

   How the bytes of a block look as characters, for the text dump
   and for recognizing IBM labels.  Six-bit codes only use the low
   six bits of the byte.
'''

# EBCDIC to ASCII, with blanks for what we can't show
EBCDIC = (
    "                "
    "                "
    "                "
    "                "
    "          [.<(+|"
    "&         !$*);^"
    "-/        |,%_>?"
    "         `:#|'=\""
    " abcdefghi      "
    " jklmnopqr      "
    " ~stuvwxyz      "
    "                "
    "{ABCDEFGHI      "
    "}JKLMNOPQR      "
    "\\ STUVWXYZ      "
    "0123456789      "
)

# The same, but with ? for what isn't a character
EBCDIC_LABEL = (
    " ???????????????"
    "????????????????"
    "????????????????"
    "????????????????"
    " ?????????[.<(+|"
    "&?????????!$*);^"
    "-/????????|,%_>?"
    "?????????`:#|'=\""
    "?abcdefghi??????"
    "?jklmnopqr??????"
    "?~stuvwxyz??????"
    "????????????????"
    "{ABCDEFGHI??????"
    "}JKLMNOPQR??????"
    "\\?STUVWXYZ??????"
    "0123456789????? "
)

# IBM 1401: t=tapemark, r=recordmark, d=delta, g=groupmark
BCD1401 = (
    " 1234567890#@:>t"
    " /STUVWXYZr,%='\""
    "-JKLMNOPQR!$*);d"
    "&ABCDEFGHI?.?(<g"
)

# Burroughs B5500 internal code: } >=, ~ left arrow, | multiply, { <=, ! not equal
B5500 = (
    "0123456789#@?:>}"
    "+ABCDEFGHI.[&(<~"
    "|JKLMNOPQR$*-);{"
    " /STUVWXYZ,%!]=\""
)

# SDS internal code: s=square root, g=group mark, d=delta, r=record mark
SDS = (
    "01234567890=':>s"
    "+ABCDEFGHI?.)[<g"
    "-JKLMNOPQR!$*];d"
    " /STUVWXYZr,(~\\#"
)

# SDS magtape code: t=tab, c=carriage return, b=backspace, l=lozenge
SDSM = (
    "01234567890#@:>s"
    " /STUVWXYZt,%~\\g"
    "-JKLMNOPQRc$*];d"
    "&ABCDEFGHIb.l[<r"
)

# Whirlwind Flexowriter
FLEXO = (
    "  e8 |a3 =s4i+u2"
    "..d5rlj7n,f6c-k "
    "t z.l.w h.y p q "
    "o.b g 9 m.x v.0 "
)

CDC = (
    ":ABCDEFGHIJKLMNO"
    "PQRSTUVWXYZ01234"
    "56789+-*/()$= ,."
    "#[]%\"_!&'?<>@\\^;"
)

# Univac Fieldata
UNIVAC = (
    "@[]#^ ABCDEFGHIJ"
    "KLMNOPQRSTUVWXYZ"
    ")-+<=>&$*(%:?!,\\"
    "0123456789';/.\"_"
)

def ascii_char(ch):
    if 0x20 <= ch < 0x7f:
        return chr(ch)
    return ' '

def sixbit_char(ch):
    ''' DEC SixBit is ASCII-32 '''
    return chr((ch & 0x3f) + 32)

def table_char(table):
    def lookup(ch):
        return table[ch & 0x3f]
    return lookup

CHARSETS = {
    "ASCII": ascii_char,
    "EBCDIC": lambda ch: EBCDIC[ch & 0xff],
    "BCD": table_char(BCD1401),
    "B5500": table_char(B5500),
    "sixbit": sixbit_char,
    "SDS": table_char(SDS),
    "SDSM": table_char(SDSM),
    "flexo": table_char(FLEXO),
    "CDC": table_char(CDC),
    "Univac": table_char(UNIVAC),
}

def translator(name):
    ''' A function from a byte to a one character string '''
    return CHARSETS.get(name, lambda ch: '?')

def ebcdic_text(octets):
    ''' Label text, with ? for unknown characters '''
    return "".join(EBCDIC_LABEL[x] for x in octets)
