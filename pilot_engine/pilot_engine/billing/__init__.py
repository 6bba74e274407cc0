"""Plan resolution, usage accounting, admission control and payment intake."""
