"""
Core synchronization engine.

This package contains the offline-first logic. The `RetryQueue` owns pending
mutating actions, the `ConnectivityMonitor` announces network transitions, and
`SyncContext` wires every component together at startup. `ReportActions` is
the facade the application calls to act on reports whether or not it is online.
"""
