"""ClusterRefine: distributed user-cluster refinement for clustered recommenders.

This package implements the participation-learning step of a clustering-based
recommender: every user is reassigned to the cluster whose model best explains
their training data, with the work split across a fixed pool of workers.

Modules:
    common: Exceptions, logging configuration and metrics
    participation: Shard planning, reassignment and result synchronization
"""

__version__ = "0.1.0"
