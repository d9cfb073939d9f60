"""procsup - single-machine process supervisor.

A daemon keeps a durable list of processes and (re)launches them; a client
controls it over a small UDP command protocol.
"""

__version__ = "0.1.0"
