"""Two-participant chat rooms: share codes, join, delete and the room store."""
