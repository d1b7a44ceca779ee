"""Moments: title analysis, pattern learning and recurring-event memory."""
