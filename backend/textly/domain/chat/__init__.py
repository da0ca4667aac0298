"""Room messages, unread counters and the inbox subscription."""
