"""Diagram store: state, reducer transitions, history and the store container."""
