"""
punit.covariates
================

Covariates: the conditions a baseline was recorded under (time of day,
region, model, ...). A test declares which covariates matter and how they are
categorised; resolvers read their current values and matchers compare them
with a baseline's recorded values.
"""
