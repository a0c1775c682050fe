"""Data explorer: filtered, paginated queries and audited mutations over arbitrary tables."""
