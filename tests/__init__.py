"""
Test suite for idkey

Unit tests for tree building, pruning, queries, species aggregation,
the local cache, the HTTP client, the session state machine and the CLI.
No test touches the network.
"""
