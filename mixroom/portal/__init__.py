"""Client portal: visibility filtering and the track approval state machine."""
