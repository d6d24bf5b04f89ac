#!/usr/bin/env python3

'''
   Shared test fixtures
   ~~~~~~~~~~~~~~~~~~~~
'''

import io
import math

import pytest

from readtape.base import parmsets
from readtape.base.decoder import Decoder
from readtape.base.log import Log
from readtape.base.options import Options

def new_options(*options, **attributes):
    ''' Options as if given on the command line, then attributes set directly '''
    opts = Options()
    for i in options:
        assert opts.parse_option(i)
    for key, val in attributes.items():
        setattr(opts, key, val)
    if opts.head_to_trk is None:
        opts.default_track_order()
    return opts

def new_decoder(encoding_class, opts, deltat=1e-6):
    ''' A decoder ready for the first attempt at a block '''
    log = Log(io.StringIO())
    sets = parmsets.default_parmsets(opts.mode, opts, log)
    dec = Decoder(opts, log, sets, deltat)
    dec.attach(encoding_class)
    dec.init_blockstate()
    dec.init_trackstate()
    return dec

@pytest.fixture
def make_options():
    return new_options

@pytest.fixture
def make_decoder():
    return new_decoder

@pytest.fixture
def log():
    return Log(io.StringIO())

def write_silent_csv(path, ntrks=9, nsamples=200):
    ''' Two title lines, then samples with no signal at 1 MHz '''
    with open(path, "w") as file:
        file.write("Time[s], " + ", ".join("Channel %d" % i for i in range(ntrks)) + "\n")
        file.write("Time[s]" + ",Voltage" * ntrks + "\n")
        for i in range(nsamples):
            file.write("%.7f" % (i * 1e-6) + ", 0.0" * ntrks + "\n")

@pytest.fixture
def silent_csv():
    return write_silent_csv

def render_pulses(pulses, nsamples, sigma=3.0):
    '''
       Sampled voltages of Gaussian flux transition pulses.

       pulses has a list of (position in samples, peak voltage) for each
       track; the result has a list of track voltages for each sample.
    '''
    volts = [[0.0] * len(pulses) for _i in range(nsamples)]
    reach = int(6 * sigma) + 1
    for trk, trkpulses in enumerate(pulses):
        for position, height in trkpulses:
            center = int(position)
            for ndx in range(max(0, center - reach), min(nsamples, center + reach + 1)):
                volts[ndx][trk] += height * math.exp(-((ndx - position) ** 2) / (2 * sigma * sigma))
    return volts

def write_waveform_csv(path, volts, deltat=1e-6):
    ''' Voltages as a Saleae style export '''
    ntrks = len(volts[0])
    with open(path, "w") as file:
        file.write("Time[s], " + ", ".join("Channel %d" % i for i in range(ntrks)) + "\n")
        file.write("Time[s]" + ",Voltage" * ntrks + "\n")
        for i, sample in enumerate(volts):
            file.write("%.7f" % (i * deltat) + "".join(", %.4f" % v for v in sample) + "\n")

@pytest.fixture
def waveform():
    return render_pulses

@pytest.fixture
def waveform_csv():
    return write_waveform_csv
