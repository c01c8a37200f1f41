"""
punit.core
==========

Shared vocabulary of the engine: typed names and enums, the error hierarchy,
environment-driven settings, logging setup, hashing helpers and the run
ledger abstraction.
"""
