"""Background task queue for long-running agent jobs.

The queue is a single-process, polling scheduler over a durable table of job
records.  Jobs are enqueued by the interactive layer, picked up one at a time
in ``priority DESC, created_at ASC`` order, executed by a registered handler
under a bookkeeping timeout, and left in a terminal ``completed``/``failed``
state for the user to inspect, retry, or clear.

The scheduler coordinates one process only.  Claims are conditional updates,
so two processes sharing a store cannot both run the same job, but there is
no lease or heartbeat protocol beyond the stale ``processing`` sweep.
"""
