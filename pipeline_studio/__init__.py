"""Pipeline studio: the graph-editing core of the media pipeline workflow editor."""
