from .request_id import RequestIDMiddleware, get_client_ip

__all__ = [
    "RequestIDMiddleware",
    "get_client_ip",
]
