"""Tools for the autonomous SRE team.

Read-only cluster introspection exposed to the First Responder, and the
remediation playbooks used by the offline heuristics.
"""
