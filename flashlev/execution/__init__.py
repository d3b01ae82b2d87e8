"""Loan initiation, the callback stage machine and their collaborators.

Submodules are imported directly (``flashlev.execution.initiator`` etc.) to
keep the fee and risk modules free of import cycles.
"""
