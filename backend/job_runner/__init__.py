"""
Job runner: on-demand SQL queries and HTTP checks exposed as Prometheus metrics.
"""
