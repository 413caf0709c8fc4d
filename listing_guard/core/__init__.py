"""
Core modules for Listing Guard.

This package contains the phase state machine, calendar periods, the error
taxonomy, report types and the quota engine that ties them together.
"""
