from .account import AccountHandler
from .base import BasePageHandler
from .item import ItemHandler

__all__ = ["AccountHandler", "BasePageHandler", "ItemHandler"]
