"""
Core pipeline components.

This package contains the record flow machinery:
- Middleware chain and pipeline engine
- Sampling (rate limiting) and threshold alerting
- Redaction and enrichment stages
- Diagnostics channel and metrics collection
"""
