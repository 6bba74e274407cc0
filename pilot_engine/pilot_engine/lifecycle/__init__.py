"""Time-driven state machines: trials, cases, and the periodic sweeper."""
