"""Numeric defaults shared by the models and the minimizer."""
