"""
Transforms sub-package for meteo-csv-ingest.

Small, independently testable value transforms used by the layout
resolver and the row pipeline:
  - numbers.py: strict integer / float parsing of text tokens.
  - units.py: map declared units to SI offset/multiplier pairs.
"""
