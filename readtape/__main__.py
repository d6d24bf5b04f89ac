#!/usr/bin/env python3

'''
   Decode the samples of a tape
   ~~~~~~~~~~~~~~~~~~~~~~~~~~~~
'''

from . import main

if __name__ == "__main__":
    main.main()
