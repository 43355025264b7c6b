"""Counter store adapters for rate limiting.

The rate limiter service depends only on ``AbstractCounterStore``. Concrete
stores (Redis for shared deployments, in-memory for tests and single-process
development) are selected at startup by ``create_counter_store``.
"""
