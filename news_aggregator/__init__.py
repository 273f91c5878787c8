"""
News Aggregator - multi-provider news ingestion and preference-ranked search.
"""

__version__ = "0.1.0"
