"""Calendar record model, normalization and iCalendar encoding."""
