"""
GAP Engine

Marketing operations core that keeps a per-company context graph healthy:
1. Assesses completeness and freshness of the context graph
2. Guarantees fresh competitive context (Competition Gap)
3. Runs diagnostic Labs to fill missing and stale fields
4. Synthesizes a scored GAP result, insights and a QBR snapshot
"""

__version__ = "0.1.0"
