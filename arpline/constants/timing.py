"""Look-ahead scheduler timing constants.

The scheduler wakes every ``POLL_INTERVAL_SECONDS`` and queues every event due
within the next ``LOOKAHEAD_SECONDS``. The poll interval must stay well below
the look-ahead window so that a late wake-up still finds its events queued.
"""

LOOKAHEAD_SECONDS = 0.1
POLL_INTERVAL_SECONDS = 0.025

# If the host stalls and the transport falls further behind than this, the
# next event is resynced to "now" instead of replaying the missed steps.
RESYNC_THRESHOLD_SECONDS = 0.05

# Humanize: maximum start-time deviation at humanize = 1.0
HUMANIZE_TIMING_SECONDS = 0.01
