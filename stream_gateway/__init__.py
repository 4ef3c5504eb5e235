"""
Stream Gateway.

WebSocket relay that forwards the freshest frame of each published stream
from its streamer to the viewers subscribed to it.
"""

__version__ = "1.0.0"
