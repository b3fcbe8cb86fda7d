"""Core domain package for flagscope.

Core contains batching, deduplication, rate gating and backoff logic without
any HTTP or filesystem-specific code, keeping the pipeline portable.
"""
