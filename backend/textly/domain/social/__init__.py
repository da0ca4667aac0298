"""Friend requests and the request/accept/cancel state machine."""
