"""
Lap segmentation modules for swim workout analysis.

This package turns the flat sequence of pool lengths read from FIT files into
sets, derives positional features for every lap and joins session attributes,
producing the table used as model input.
"""
