from sqlalchemy import Column, Integer, String
from storefront.data.database import Base

class BrandModel(Base):
    __tablename__ = "brands"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
