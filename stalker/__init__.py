"""
StalkerKit -- Stalker Portal Client and MAC Credential Toolkit
===============================================================

Client for Stalker/Ministra IPTV middleware (the ``portal.php`` protocol
spoken by MAG set-top boxes), with tools to generate, discover and audit
the MAC addresses those portals use as device credentials.

Modules:
    core/        - Engine facade, data models, and error taxonomy
    protocol/    - Protocol client, stream link and subscription parsing
    credentials/ - MAC generation, discovery engine, batch tester
    output/      - Console display and JSON reports
"""

from stalker.core.engine import StalkerEngine

__all__ = ["StalkerEngine"]
__version__ = "1.0.0"
