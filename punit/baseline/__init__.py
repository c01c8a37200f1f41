"""
punit.baseline
==============

Finding the baseline that applies to a run: footprints, baseline filenames,
the on-disk repository and the two-phase selector.
"""
