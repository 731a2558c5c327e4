"""
                OrderFlow KDS Core

Order lifecycle and real-time kitchen display synchronization:
server-side pricing, durable order identity, at-least-once
broadcast to KDS screens and replay for reconnecting displays.

Author: Khalil_Bannouri
Version: 4.0.0
License: MIT
"""

__version__ = "4.0.0"
__author__ = "Khalil_Bannouri"
