"""Pipeline orchestration for the autonomous SRE team.

Sentinel -> First Responder -> Commander -> Engineer -> Communicator,
strictly sequential, with a short-circuit when no anomaly is found.
"""
