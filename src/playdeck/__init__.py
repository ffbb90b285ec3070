"""
Playdeck - launch and track parameterized Ansible demos.

Packages:
- playdeck.core: errors, logging, settings, host capabilities, retry policy
- playdeck.catalog: catalog parsing, role variables, catalog sync
- playdeck.execution: instance records and the execution orchestrator
- playdeck.cli: the ``playdeck`` operator command
"""

__version__ = "0.1.0"
