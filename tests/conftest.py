import datetime

import pytest
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, create_engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from fastcrud import models
from fastcrud.query import Query

Base = declarative_base()

SECTION_IDS = {
    1: "0f1e2d3c-4b5a-4697-8877-665544332211",
    2: "1f1e2d3c-4b5a-4697-8877-665544332211",
}
CATEGORY_IDS = {
    1: "a3bb189e-8bf9-4888-9912-ace4e6543001",
    2: "a3bb189e-8bf9-4888-9912-ace4e6543002",
    3: "a3bb189e-8bf9-4888-9912-ace4e6543003",
}
PRODUCT_IDS = {
    1: "6b1f5a62-0c59-4a5c-9d3e-5b2f1d6e7001",
    2: "6b1f5a62-0c59-4a5c-9d3e-5b2f1d6e7002",
    3: "6b1f5a62-0c59-4a5c-9d3e-5b2f1d6e7003",
    4: "6b1f5a62-0c59-4a5c-9d3e-5b2f1d6e7004",
    5: "6b1f5a62-0c59-4a5c-9d3e-5b2f1d6e7005",
}


class Section(models.CrudMixin, Base):
    __tablename__ = "sections"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(36))
    name = Column(String, nullable=False)


class Category(models.CrudMixin, Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(36))
    name = Column(String, nullable=False)
    section_id = Column(Integer, ForeignKey("sections.id"))

    section = relationship(Section)


class Product(models.CrudMixin, models.SoftDeletes, Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(36))
    name = Column(String, nullable=False)
    price = Column(Integer)
    tags = Column(JSON)
    released_at = Column(DateTime)
    category_id = Column(Integer, ForeignKey("categories.id"))

    category = relationship(Category)
    reviews = relationship("Review", back_populates="reviewed_product")


class Review(models.CrudMixin, Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True)
    rating = Column(Integer, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"))

    reviewed_product = relationship(Product, back_populates="reviews")


@pytest.fixture(scope="function")
def Session():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield sessionmaker(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session(Session):
    with Session() as session:
        yield session


@pytest.fixture(scope="function")
def catalogue(Session):
    populate_catalogue(Session)
    return Session


def populate_catalogue(Session):
    with Session.begin() as session:
        session.add_all(
            [
                Section(id=1, external_id=SECTION_IDS[1], name="Electronics"),
                Section(id=2, external_id=SECTION_IDS[2], name="Garden"),
                Category(id=1, external_id=CATEGORY_IDS[1], name="Phones", section_id=1),
                Category(id=2, external_id=CATEGORY_IDS[2], name="Laptops", section_id=1),
                Category(id=3, external_id=CATEGORY_IDS[3], name="Tools", section_id=2),
                Product(
                    id=1,
                    external_id=PRODUCT_IDS[1],
                    name="Galaxy Phone",
                    price=900,
                    tags={"color": "black", "size": "m"},
                    released_at=datetime.datetime(2024, 1, 15, 10, 0),
                    category_id=1,
                ),
                Product(
                    id=2,
                    external_id=PRODUCT_IDS[2],
                    name="Pixel Phone",
                    price=700,
                    tags={"color": "white"},
                    released_at=datetime.datetime(2024, 2, 29, 18, 30),
                    category_id=1,
                ),
                Product(
                    id=3,
                    external_id=PRODUCT_IDS[3],
                    name="ThinkPad",
                    price=1500,
                    tags={"color": "black"},
                    released_at=datetime.datetime(2023, 12, 31, 23, 0),
                    category_id=2,
                ),
                Product(
                    id=4,
                    external_id=PRODUCT_IDS[4],
                    name="Shovel",
                    price=30,
                    tags={"color": "green"},
                    released_at=None,
                    category_id=3,
                ),
                Product(
                    id=5,
                    external_id=PRODUCT_IDS[5],
                    name="Rake",
                    price=None,
                    tags=None,
                    released_at=datetime.datetime(2024, 3, 1, 0, 0),
                    category_id=3,
                ),
                Review(id=1, rating=5, product_id=1),
                Review(id=2, rating=3, product_id=1),
                Review(id=3, rating=4, product_id=3),
            ]
        )


def populate_sections(Session, count: int):
    with Session.begin() as session:
        session.add_all(Section(id=i, name=f"Section {i:03}") for i in range(1, count + 1))


def ids(query: Query) -> list:
    """Executes the query ordered by id and returns the ids"""
    return [row.id for row in query.order_by("id").get()]
