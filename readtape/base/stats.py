#!/usr/bin/env python3

'''
   Flux transition statistics
   ~~~~~~~~~~~~~~~~~~~~~~~~~~

   Histograms of where the transitions fall relative to the expected
   bit position, the head deskew computed from them, and the tape
   density estimate made before any block is decoded.
'''

import math

from . import errors
from . import options
from .log import intcommas

PEAK_STATS_NUMBUCKETS = 50

MAXSKEWSAMP = 50
MAXSKEWBLKS = 100
MINSKEWTRANS = 1000
DESKEW_PEAKDIFF_WARNING = 0.10
DESKEW_STDDEV_WARNING = 0.03
ADJ_DESKEW_THRESHOLD = 0.1

ESTDEN_BINWIDTH = 0.5e-6
ESTDEN_MAXDELTA = 120e-6
ESTDEN_NUMBINS = 150
ESTDEN_COUNTNEEDED = 9999
ESTDEN_MINPERCENT = 5
ESTDEN_CLOSEPERCENT = 20
STANDARD_DENSITIES = (200, 556, 800, 1600, 9042)

# Histogram span, in bit spaces, for each encoding
PEAK_STATS_RANGE = {
    options.NRZI: 1.0,
    options.PE: 1.2,
    options.GCR: 3.0,
    options.WW: 0.75,
}

class PeakStats():
    ''' Per track histogram of flux transition positions '''

    def __init__(self, mode, ntrks, adjdeskew=False):
        self.mode = mode
        self.ntrks = ntrks
        self.adjdeskew = adjdeskew
        self.initialized = False
        self.leftbin = 0.0
        self.binwidth = 0.0
        self.counts = [[0] * PEAK_STATS_NUMBUCKETS for trk in range(options.MAXTRKS)]
        self.trksums = [0] * options.MAXTRKS
        self.reset_blockcounts()

    def reset_blockcounts(self):
        self.block_deviation = [0.0] * options.MAXTRKS
        self.block_counts = [0] * options.MAXTRKS

    def start(self, bitspacing):
        self.counts = [[0] * PEAK_STATS_NUMBUCKETS for trk in range(options.MAXTRKS)]
        self.trksums = [0] * options.MAXTRKS
        self.reset_blockcounts()
        span = bitspacing * PEAK_STATS_RANGE.get(self.mode, 1.0)
        binwidth = span / PEAK_STATS_NUMBUCKETS
        # round to the nearest 0.1 usec so the bins print nicely
        self.binwidth = int(binwidth * 10e6 + 0.5) * 1e-6 / 10.0
        if self.binwidth <= 0:
            self.binwidth = binwidth
        leftbin = bitspacing - span / 2
        self.leftbin = int(leftbin / self.binwidth) * self.binwidth
        self.initialized = True

    def record(self, bitspacing, peaktime, trknum):
        if not self.initialized:
            self.start(bitspacing)
        bucket = int((peaktime - self.leftbin) / self.binwidth)
        if peaktime < self.leftbin:
            self.counts[trknum][0] += 1
        elif bucket >= PEAK_STATS_NUMBUCKETS:
            self.counts[trknum][PEAK_STATS_NUMBUCKETS - 1] += 1
        else:
            self.counts[trknum][bucket] += 1
            self.trksums[trknum] += 1
            if self.adjdeskew:
                self.block_counts[trknum] += 1
                avg = self.block_deviation[trknum]
                self.block_deviation[trknum] = avg + ((peaktime - bitspacing) - avg) / self.block_counts[trknum]

    def bucket_usec(self, bkt):
        return self.binwidth * 1e6 * bkt + self.leftbin * 1e6

    def average_usec(self, trk):
        ''' Average position, ignoring the two extreme buckets '''
        if not self.trksums[trk]:
            return 0.0
        avgsum = 0
        for bkt in range(1, PEAK_STATS_NUMBUCKETS - 1):
            avgsum += int(self.counts[trk][bkt] * self.bucket_usec(bkt))
        return avgsum / self.trksums[trk]

    def stddev_usec(self, trk, avg):
        if not self.trksums[trk]:
            return 0.0
        total = 0.0
        for bkt in range(1, PEAK_STATS_NUMBUCKETS - 1):
            deviation = self.bucket_usec(bkt) - avg
            total += self.counts[trk][bkt] * deviation * deviation
        return math.sqrt(total / self.trksums[trk])

    def min_transitions(self):
        return min(self.trksums[:self.ntrks])

    def write_csv(self, filename):
        '''
           Write a spreadsheet of the percentage of transitions in each bin.
           Returns the number of measurements.
        '''
        totalcount = 0
        with open(filename, "w") as file:
            file.write("total cnt, <=%.1f uS, >=%.1f uS, track" % (
                self.leftbin * 1e6, self.bucket_usec(PEAK_STATS_NUMBUCKETS - 1)
            ))
            for bkt in range(1, PEAK_STATS_NUMBUCKETS - 1):
                file.write(",%.1f uS" % self.bucket_usec(bkt))
            if self.mode == options.NRZI:
                file.write(",avg uS")
            file.write("\n")
            for trk in range(self.ntrks):
                counts = self.counts[trk]
                file.write("%d, %d, %d," % (
                    self.trksums[trk] + counts[0] + counts[-1], counts[0], counts[-1]
                ))
                file.write("trk%d" % trk)
                for bkt in range(1, PEAK_STATS_NUMBUCKETS - 1):
                    pct = 0.0
                    if self.trksums[trk]:
                        pct = 100 * counts[bkt] / self.trksums[trk]
                    file.write(", %.2f%%" % pct)
                if self.mode == options.NRZI:
                    file.write(", %.2f" % self.average_usec(trk))
                file.write("\n")
                totalcount += self.trksums[trk]
        self.initialized = False
        return totalcount

class Skew():
    '''
       Per track sample delays that line the heads up with the
       latest one, and the FIFOs that implement them.
    '''

    def __init__(self, ntrks, sample_deltat, log, quiet=False):
        self.ntrks = ntrks
        self.sample_deltat = sample_deltat
        self.log = log
        self.quiet = quiet
        self.delaycnt = [0] * options.MAXTRKS
        self.given = False
        self.max_delay_percent = 0.0
        self.reset_fifos()

    def reset_fifos(self):
        self.vdelayed = [[0.0] * MAXSKEWSAMP for trk in range(options.MAXTRKS)]
        self.ndx_next = [0] * options.MAXTRKS
        self.slots_filled = [0] * options.MAXTRKS

    def delay(self, trk, voltage):
        ''' Push a voltage in, get the delayed one out '''
        delaycnt = self.delaycnt[trk]
        if delaycnt == 0:
            return voltage
        ndx = self.ndx_next[trk]
        fifo = self.vdelayed[trk]
        if self.slots_filled[trk] < delaycnt:
            retval = voltage
            self.slots_filled[trk] += 1
        else:
            retval = fifo[ndx]
        fifo[ndx] = voltage
        ndx += 1
        if ndx >= delaycnt:
            ndx = 0
        self.ndx_next[trk] = ndx
        return retval

    def set_delay(self, trk, secs):
        errors.check(self.sample_deltat > 0, "delta T not set yet in skew_set_delay")
        errors.check(secs >= 0, "negative skew amount %f for trk %d", secs, trk)
        delay = int((secs + self.sample_deltat / 2) / self.sample_deltat)
        if delay > MAXSKEWSAMP:
            self.log.rlog("---> Warning: head %d skew of %.1f usec is too big\n", trk, secs * 1e6)
        self.delaycnt[trk] = min(delay, MAXSKEWSAMP)

    def display(self, peakstats=None):
        for trk in range(self.ntrks):
            self.log.rlog(
                "  track %d delayed by %d clocks (%.2f usec) ",
                trk, self.delaycnt[trk], self.delaycnt[trk] * self.sample_deltat * 1e6
            )
            if self.given or peakstats is None:
                self.log.rlog("as specified by \"skew=\"\n")
            else:
                self.log.rlog("based on %d observed flux transitions\n", peakstats.trksums[trk])

    def compute_deskew(self, peakstats, bitspace, do_set):
        '''
           Work out (and maybe set) the delays from the transition
           statistics.  Returns True if the skew is acceptable.
        '''
        avg = [peakstats.average_usec(trk) for trk in range(self.ntrks)]
        stddev = [peakstats.stddev_usec(trk, avg[trk]) for trk in range(self.ntrks)]
        maxavg = max(avg)
        minavg = min(avg)
        maxstddev = max(stddev)
        if do_set:
            for trk in range(self.ntrks):
                self.log.dlog(
                    "trk %d has %d transitions, avg position %.2f usec, std dev %.2f usec\n",
                    trk, peakstats.trksums[trk], avg[trk], stddev[trk]
                )
                if peakstats.trksums[trk] > 0:
                    self.set_delay(trk, (maxavg - avg[trk]) / 1e6)
                else:
                    self.set_delay(trk, 0)
            if not self.quiet:
                self.display(peakstats)
        bitspace_usec = bitspace * 1e6
        peak_frac = (maxavg - minavg) / bitspace_usec
        stddev_frac = maxstddev / bitspace_usec
        if not self.quiet:
            self.log.rlog(
                "  the earliest peak is %.2f usec, and the latest peak is %.2f usec\n",
                minavg, maxavg
            )
            self.log.rlog(
                "  that peak difference of %.2f usec, and the largest standard deviation of "
                "%.2f usec, are %.1f%% and %.1f%% of the nominal bit spacing\n",
                maxavg - minavg, maxstddev, peak_frac * 100, stddev_frac * 100
            )
        if do_set:
            self.max_delay_percent = peak_frac * 100
        return peak_frac < DESKEW_PEAKDIFF_WARNING and stddev_frac < DESKEW_STDDEV_WARNING

    def adjust(self, peakstats, bitspacing):
        ''' Nudge the delays by one sample, based on the last block '''
        for trk in range(self.ntrks):
            deviation = peakstats.block_deviation[trk]
            self.log.rlog(
                "trk %d deviation is %.2f usec of bitspacing %.2f usec",
                trk, deviation * 1e6, bitspacing * 1e6
            )
            if deviation < ADJ_DESKEW_THRESHOLD * bitspacing and self.delaycnt[trk] > 0:
                self.delaycnt[trk] -= 1
                self.log.rlog(", skew reduced to %d", self.delaycnt[trk])
            elif deviation > ADJ_DESKEW_THRESHOLD * bitspacing and self.delaycnt[trk] < MAXSKEWSAMP:
                self.delaycnt[trk] += 1
                self.log.rlog(", skew increased to %d", self.delaycnt[trk])
            self.log.rlog("\n")
        peakstats.reset_blockcounts()

class DensityEstimator():
    ''' Guess the BPI from the shortest common transition spacing '''

    def __init__(self):
        self.deltas = []
        self.counts = []
        self.totalcount = 0

    def done(self):
        return self.totalcount >= ESTDEN_COUNTNEEDED

    def transition(self, deltasecs):
        ''' Count one transition distance, return True when we have enough '''
        errors.check(deltasecs > 0, "negative delta %f usec in estden_transition", deltasecs * 1e6)
        if deltasecs <= ESTDEN_MAXDELTA:
            delta = int(deltasecs / ESTDEN_BINWIDTH)
            if delta in self.deltas:
                ndx = self.deltas.index(delta)
            else:
                errors.check(
                    len(self.deltas) < ESTDEN_NUMBINS,
                    "estden: too many transition delta values: %d", len(self.deltas)
                )
                ndx = len(self.deltas)
                self.deltas.append(delta)
                self.counts.append(0)
            self.counts[ndx] += 1
            self.totalcount += 1
        return self.done()

    def density(self, ips, mode):
        ''' The raw estimate, and the bin it came from '''
        mindist = None
        for delta, count in zip(self.deltas, self.counts):
            if count > self.totalcount * ESTDEN_MINPERCENT // 100:
                if mindist is None or delta < mindist:
                    mindist = delta
        errors.check(mindist is not None, "no transitions seen for density estimation")
        density = 1.0 / (ips * (mindist + 0.5) * ESTDEN_BINWIDTH)
        if mode == options.PE:
            density /= 2
        return density, mindist

    def setdensity(self, ips, mode, nblks, log=None):
        ''' Snap to a standard density, or give up '''
        density, mindist = self.density(ips, mode)
        for stddensity in STANDARD_DENSITIES:
            if abs(density - stddensity) < stddensity * ESTDEN_CLOSEPERCENT / 100:
                if log:
                    log.rlog(
                        "  density was set to %.0f BPI (%.2f usec/bit) after reading the first %d "
                        "blocks and seeing %s transitions in %d bins that imply %.0f BPI\n",
                        stddensity, 1e6 / (stddensity * ips), nblks,
                        intcommas(self.totalcount), len(self.deltas), density
                    )
                return stddensity
        raise errors.Fatal(
            "The detected density of %.0f (%.1f usec) after seeing %s transitions is "
            "non-standard; please specify it.",
            density, (mindist + 0.5) * ESTDEN_BINWIDTH * 1e6, intcommas(self.totalcount)
        )
