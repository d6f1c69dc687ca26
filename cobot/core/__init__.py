"""Errors, binary codec and the vocabulary cache."""
