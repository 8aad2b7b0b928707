"""Participation learning for clustered recommenders.

Reassigns every user to the cluster whose model gives the lowest training
error, with users sharded across a fixed group of workers and the results
synchronized so every worker ends with the same assignment.
"""

from src.participation.collective import (
    LocalCommunicator,
    LocalGroup,
    MPICommunicator,
    run_local_group,
)
from src.participation.config import RefinementConfig
from src.participation.learn import StepResult, learn_participation, refine_assignments
from src.participation.reassign import ErrorTable, choose_cluster, reassign_user
from src.participation.sharding import ShardRange, plan_all_shards, plan_shard

__all__ = [
    "ErrorTable",
    "LocalCommunicator",
    "LocalGroup",
    "MPICommunicator",
    "RefinementConfig",
    "ShardRange",
    "StepResult",
    "choose_cluster",
    "learn_participation",
    "plan_all_shards",
    "plan_shard",
    "reassign_user",
    "refine_assignments",
    "run_local_group",
]
