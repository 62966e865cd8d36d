"""
JobWatch Alert Dispatch Service.

Turns monitored jobs' state changes (failure, cancellation, lost,
checkpoint failure) into email and chat-card notifications, throttled to
at most one alert per job per cool-down interval.
"""
