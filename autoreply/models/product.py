from sqlalchemy import Boolean, Column, Integer, Numeric, Text

from autoreply.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)
