"""
Test Suite for the Analysis Intelligence Engine

This package contains all tests for the intelligence components:
- finding extraction and record normalization
- pattern engine (recurrence, trends, novelty, compliance, recommendations)
- outcome learning and defect prioritization
- JSONL store, manager orchestration, presenter, HTTP API
"""
