"""
Pipeline runner and command-line entry point.
"""
