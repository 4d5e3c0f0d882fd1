"""Connection lifecycle: task supervision, handlers and the pool."""
