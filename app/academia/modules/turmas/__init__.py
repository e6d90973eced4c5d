"""
Turmas module (admin-only): turmas (cohorts) and their pelotões.
"""
