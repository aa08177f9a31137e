"""
P2P Fuzzer

Chaos-fuzzing orchestrator for a peer-to-peer oracle network: generates a
population of peer nodes, funds them on an ephemeral chain, runs them in
worker processes and perturbs the pool with churn and version skew.
"""

__version__ = "0.1.0"
