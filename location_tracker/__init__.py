"""Location Tracker - GPS and IP based location resolution."""
