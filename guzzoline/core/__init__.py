"""
Core modules for Guzzoline.

This package contains the cost accounting functionality: token counts,
pricing, aggregation, budgets and display formatting.
"""
