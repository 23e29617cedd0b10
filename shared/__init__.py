"""
StalkerKit Shared Module
========================

Common infrastructure shared by the StalkerKit tool packages:
configuration, structured logging, console output, and the async
HTTP transport used to reach portal servers.
"""

from shared.config import StalkerKitConfig, get_config

__all__ = ["StalkerKitConfig", "get_config"]
