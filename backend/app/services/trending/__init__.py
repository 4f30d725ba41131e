"""
Trending ranking service.

- query: trending score aggregate (ScoreQuery)
- cache: cache-aside pages and invalidation (TrendingCache)
- registry: best-effort key registry (InvalidationGroup)
- scheduler: recurring and one-off invalidation triggers
- relay: content event fan-out (EventRelay)
"""
