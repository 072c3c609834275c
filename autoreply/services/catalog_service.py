from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from autoreply.logging_config import get_logger
from autoreply.models import Product

logger = get_logger("catalog_service")


def get_active_products(db: Session, limit: int = 50) -> List[Product]:
    """Active products, alphabetically."""
    return db.query(Product).filter(Product.is_active == True).order_by(Product.name).limit(limit).all()  # noqa: E712


def _format_price(price) -> str:
    if price is None:
        return "sob consulta"
    value = Decimal(str(price)).quantize(Decimal("0.01"))
    return "R$ " + f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def format_product_catalog(products: List[Product]) -> str:
    """Format products as a catalogue block for the system prompt."""
    if not products:
        return ""

    lines = ["Produtos disponíveis:"]
    for i, product in enumerate(products, 1):
        line = f"{i}. {product.name} - {_format_price(product.price)}"
        if product.stock is not None:
            line += f" (estoque: {product.stock})" if product.stock > 0 else " (esgotado)"
        if product.description:
            line += f": {product.description}"
        lines.append(line)

    return "\n".join(lines)
