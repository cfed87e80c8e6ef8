from .grpc_channel import dial as dial
from .http_client import http_session as http_session
