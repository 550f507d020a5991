# DataTracker api subpackage
from .broadcast import BroadcastPort
from .websocket import WebSocketServer

__all__ = ['BroadcastPort', 'WebSocketServer']
