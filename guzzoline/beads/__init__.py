"""
Bead modules for Guzzoline.

This package contains work-item classification, convoy grouping and
epic progress roll-ups.
"""
