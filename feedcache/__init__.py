"""
Feedcache

Stale-while-revalidate query cache for the feed aggregator:
1. Serves cluster, list and topic feeds straight from Redis
2. Refreshes stale entries from PostgreSQL in the background
3. Exposes explicit invalidation for the write path (syncs, likes, retweets)
"""

__version__ = "0.1.0"
