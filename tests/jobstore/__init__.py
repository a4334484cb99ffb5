"""
Job Store Test Suite.

- Document store operations
- Job storage state transitions, locks, signals
- Client operations (QueueManager)
- Processing (Executor, Dispatcher, background schedulers, JobServer)
"""
