"""Example scripts for Hybrid Store.

Available examples:

basic_usage.py
    Create a store on a CSV directory, wait for the first sync, mutate
    through memory, watch the write-behind queue drain, pull in a remote
    edit with a bulk sync.

Run:
    python examples/basic_usage.py
"""
