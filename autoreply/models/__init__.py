from autoreply.models.message import ChatMessage
from autoreply.models.product import Product
from autoreply.models.prompt import Prompt

__all__ = [
    "ChatMessage",
    "Product",
    "Prompt",
]
