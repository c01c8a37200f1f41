"""
punit.spec
==========

Execution specifications: the stored, reviewable record of a baseline or an
approved threshold, its YAML form with a content fingerprint, success
criteria, expiration, and a cached registry that resolves ids to files.
"""
