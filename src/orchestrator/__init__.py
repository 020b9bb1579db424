"""Install orchestration: dependency graph, run state, apply-and-wait executor.

Walks a plan's units in dependency order, applying each unit's manifests and
waiting for its readiness conditions before moving on.
"""
