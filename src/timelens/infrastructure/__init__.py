"""Infrastructure layer — remote command boundary, query cache, timers."""
