"""REST API and WebSocket for value meter control."""
from .rest import create_app, start_api_server, WebSocketErrorFilter

__all__ = ['create_app', 'start_api_server', 'WebSocketErrorFilter']
