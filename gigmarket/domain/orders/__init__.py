"""Orders domain - reservations, order status machine and fulfilment"""

from .router import router

__all__ = ["router"]
