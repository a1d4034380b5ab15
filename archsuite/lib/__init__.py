"""Thin adapters around the external tools archsuite drives."""
