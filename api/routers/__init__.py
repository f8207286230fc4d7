"""
API Routers - HTTP endpoint handlers

Each router handles a specific domain of functionality:
- records: Search, random sampling, breeds and statistics
- health: Readiness and circuit breaker status
"""
